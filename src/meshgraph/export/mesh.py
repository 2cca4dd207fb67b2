"""
Nested global/region document (Vizceral traffic graph).

  global "edge"
  ├── region "INTERNET"
  ├── region "istio-mesh"   (every discovered service + connections)
  └── connection INTERNET -> istio-mesh

maxVolume is the sum of ``incoming_edge.total`` over every node, i.e. every
connection drawn inside the mesh region (INTERNET -> root included). The
INTERNET -> istio-mesh connection is synthetic: 95% normal, 2% warning,
3% danger of maxVolume.

Inside the region, each connection maps the real buckets:
normal = 2xx + 3xx, warning = 4xx, danger = 5xx. A service reached along
several paths is drawn once, and repeated source -> target pairs are merged
into one connection whose buckets are summed.
"""
from __future__ import annotations

from typing import Any, Dict, List, Tuple

from meshgraph.graph.tree import EdgeCounters, Node, preorder

INTERNET = "INTERNET"
MESH = "istio-mesh"

NORMAL_SHARE = 0.95
WARNING_SHARE = 0.02
DANGER_SHARE = 0.03

STREAMING = {"streaming": 1}


def max_volume(roots: List[Node]) -> float:
    return sum(n.incoming_edge.total for n in preorder(roots))


def _metrics(c: EdgeCounters) -> Dict[str, float]:
    m = {
        "normal": c.rate_2xx + c.rate_3xx,
        "warning": c.rate_4xx,
        "danger": c.rate_5xx,
    }
    return {k: v for k, v in m.items() if v > 0.0}


def _merge(a: EdgeCounters, b: EdgeCounters) -> EdgeCounters:
    return EdgeCounters.from_buckets(
        rate_2xx=a.rate_2xx + b.rate_2xx,
        rate_3xx=a.rate_3xx + b.rate_3xx,
        rate_4xx=a.rate_4xx + b.rate_4xx,
        rate_5xx=a.rate_5xx + b.rate_5xx,
    )


def _service_node(node: Node) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "renderer": "focusedChild",
        "name": node.identity.qualified,
        "displayName": node.identity.display,
        "metadata": dict(STREAMING),
    }
    if node.graph_link:
        out["notices"] = [{"title": "Prometheus graph", "link": node.graph_link, "severity": 0}]
    return out


def render(roots: List[Node], *, timestamp: int = 0) -> Dict[str, Any]:
    volume = max_volume(roots)

    nodes: List[Dict[str, Any]] = [{"renderer": "focusedChild", "name": INTERNET, "metadata": dict(STREAMING)}]
    pairs: Dict[Tuple[str, str], EdgeCounters] = {}
    seen = {INTERNET}
    for node in preorder(roots):
        name = node.identity.qualified
        # a service reached along several paths is drawn once
        if name not in seen:
            seen.add(name)
            nodes.append(_service_node(node))
        parent = node.parent
        key = (parent.identity.qualified if parent is not None else INTERNET, name)
        pairs[key] = _merge(pairs[key], node.incoming_edge) if key in pairs else node.incoming_edge

    connections: List[Dict[str, Any]] = [
        {"source": src, "target": dst, "metadata": dict(STREAMING), "metrics": _metrics(c)}
        for (src, dst), c in pairs.items()
    ]

    region = {
        "renderer": "region",
        "name": MESH,
        "maxVolume": volume,
        "metadata": dict(STREAMING),
        "nodes": nodes,
        "connections": connections,
    }
    inbound = {
        "source": INTERNET,
        "target": MESH,
        "metadata": dict(STREAMING),
        "metrics": {
            "normal": volume * NORMAL_SHARE,
            "warning": volume * WARNING_SHARE,
            "danger": volume * DANGER_SHARE,
        },
    }
    return {
        "renderer": "global",
        "name": "edge",
        "updated": timestamp,
        "maxVolume": volume,
        "nodes": [
            {"renderer": "region", "name": INTERNET, "metadata": dict(STREAMING)},
            region,
        ],
        "connections": [inbound],
    }
