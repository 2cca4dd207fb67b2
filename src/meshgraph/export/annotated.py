"""
Plain document plus per-edge display hints: rate, error_rate, color, text.

The error rate keeps the historical formula

    error_rate = total - (rate_2xx / total * 100)

which subtracts a percentage from a rate; it goes negative whenever the 2xx
share times 100 exceeds the total.

Colors: total == 0 -> black; error_rate > 1 -> red; 0 < error_rate <= 1 -> orange;
otherwise green.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from meshgraph.export.plain import elements, fmt_rpm
from meshgraph.graph.tree import EdgeCounters, Node


@dataclass(frozen=True)
class EdgeHealth:
    total_rate: float
    error_rate: Optional[float]
    color: str
    text: str


def classify(counters: EdgeCounters) -> EdgeHealth:
    total = counters.total
    if total <= 0.0:
        return EdgeHealth(total_rate=0.0, error_rate=None, color="black", text="rpm=0")

    error_rate = total - (counters.rate_2xx / total * 100)
    if error_rate > 1.0:
        color = "red"
    elif error_rate > 0.0:
        color = "orange"
    else:
        color = "green"

    text = f"rpm={fmt_rpm(total)}"
    if error_rate > 0.0:
        text += f" (err={error_rate:.2f}%)"
    return EdgeHealth(total_rate=total, error_rate=error_rate, color=color, text=text)


def _annotate(node: Node) -> Dict[str, Any]:
    h = classify(node.incoming_edge)
    out: Dict[str, Any] = {"color": h.color, "text": h.text}
    if h.error_rate is not None:
        out["rate"] = fmt_rpm(h.total_rate)
        out["error_rate"] = f"{h.error_rate:.2f}"
    return out


def render(roots: List[Node], *, ids: str = "qualified") -> Dict[str, Any]:
    return elements(roots, ids=ids, edge_extra=_annotate)
