"""
Cytoscape CX document: integer ids plus attribute side tables.

- nodes:          {"@id", "n": display name, "r": qualified name}
- nodeAttributes: {"po": node id, "n": "Prometheus Graph", "v": [link]}
- edges:          {"@id", "s": parent id, "t": child id}
- edgeAttributes: {"po": edge id, "n": "req_per_min_<N>xx", "v": ["%.2f"]}, only for rates > 0

Node and edge ids are assigned in pre-order starting at 0; the aspect metadata
records the next free id and the document version (a unix timestamp).
"""
from __future__ import annotations

from typing import Any, Dict, List

from meshgraph.export.plain import fmt_rpm
from meshgraph.graph.tree import Node, preorder

LINK_ATTR = "Prometheus Graph"


def render(roots: List[Node], *, timestamp: int = 0) -> Dict[str, Any]:
    nodes: List[Dict[str, Any]] = []
    node_attrs: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []
    edge_attrs: List[Dict[str, Any]] = []
    node_id: Dict[int, int] = {}

    for node in preorder(roots):
        nid = len(nodes)
        node_id[id(node)] = nid
        nodes.append({"@id": nid, "n": node.identity.display, "r": node.identity.qualified})
        node_attrs.append({"po": nid, "n": LINK_ATTR, "v": [node.graph_link]})

        parent = node.parent
        if parent is None:
            continue
        eid = len(edges)
        edges.append({"@id": eid, "s": node_id[id(parent)], "t": nid})
        for bucket, rpm in node.incoming_edge.buckets():
            if rpm > 0.0:
                edge_attrs.append({"po": eid, "n": f"req_per_min_{bucket}", "v": [fmt_rpm(rpm)]})

    return {
        "NodesAspect": {"name": "nodes", "version": timestamp, "idCounter": len(nodes)},
        "EdgesAspect": {"name": "edges", "version": timestamp, "idCounter": len(edges)},
        "nodes": nodes,
        "edges": edges,
        "nodeAttributes": node_attrs,
        "edgeAttributes": edge_attrs,
    }
