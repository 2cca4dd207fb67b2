"""
Plain node/edge document (Cytoscape.js ``elements`` JSON).

  {"elements": {"nodes": [{"data": {...}}], "edges": [{"data": {...}}]}}

Node data: id, name ("<bare-name> (<version>)"), link_prom_graph.
Edge data: id, source, target and req_per_min_{2,3,4,5}XX, each only when > 0.

Node ids come in two flavours, fixed per call:
  - "qualified": "<name> (<version>)"
  - "sequential": "n0", "n1", ... in pre-order
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from meshgraph.graph.tree import Node, preorder

ID_STYLES = ("qualified", "sequential")

RATE_FIELDS = (
    ("req_per_min_2XX", "rate_2xx"),
    ("req_per_min_3XX", "rate_3xx"),
    ("req_per_min_4XX", "rate_4xx"),
    ("req_per_min_5XX", "rate_5xx"),
)

EdgeExtra = Callable[[Node], Dict[str, Any]]


def fmt_rpm(value: float) -> str:
    return f"{value:.2f}"


def rate_fields(node: Node) -> Dict[str, str]:
    out = {}
    for key, attr in RATE_FIELDS:
        rpm = getattr(node.incoming_edge, attr)
        if rpm > 0.0:
            out[key] = fmt_rpm(rpm)
    return out


def assign_ids(roots: Iterable[Node], ids: str = "qualified") -> Dict[int, str]:
    if ids not in ID_STYLES:
        raise ValueError(f"unknown id style {ids!r}; expected one of {ID_STYLES}")
    out: Dict[int, str] = {}
    for seq, node in enumerate(preorder(roots)):
        out[id(node)] = node.identity.qualified if ids == "qualified" else f"n{seq}"
    return out


def elements(roots: List[Node], *, ids: str = "qualified",
             edge_extra: Optional[EdgeExtra] = None) -> Dict[str, Any]:
    node_id = assign_ids(roots, ids)
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []

    for node in preorder(roots):
        nd: Dict[str, Any] = {"id": node_id[id(node)], "name": node.identity.display}
        if node.graph_link:
            nd["link_prom_graph"] = node.graph_link
        nodes.append({"data": nd})

        parent = node.parent
        if parent is None:
            continue
        ed: Dict[str, Any] = {
            "id": str(len(edges)),
            "source": node_id[id(parent)],
            "target": node_id[id(node)],
        }
        ed.update(rate_fields(node))
        if edge_extra is not None:
            ed.update(edge_extra(node))
        edges.append({"data": ed})

    return {"elements": {"nodes": nodes, "edges": edges}}


def render(roots: List[Node], *, ids: str = "qualified") -> Dict[str, Any]:
    return elements(roots, ids=ids)
