"""
Export format registry.

Every format is a ``Format`` strategy wrapping a pure ``render(roots) -> dict``.
Formats flagged ``stamped`` embed a timestamp, which callers pass in explicitly
so that rendering stays deterministic.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List

import orjson

from meshgraph.export import annotated, cx, mesh, plain
from meshgraph.graph.tree import Node


@dataclass(frozen=True)
class Format:
    name: str
    description: str
    render_fn: Callable[..., Dict[str, Any]]
    stamped: bool = False

    def render(self, roots: List[Node], timestamp: int = 0) -> Dict[str, Any]:
        if self.stamped:
            return self.render_fn(roots, timestamp=timestamp)
        return self.render_fn(roots)


FORMATS: Dict[str, Format] = {
    f.name: f
    for f in (
        Format("plain", "Cytoscape.js elements, ids are 'name (version)'",
               partial(plain.render, ids="qualified")),
        Format("plain-indexed", "Cytoscape.js elements, ids are n0, n1, ...",
               partial(plain.render, ids="sequential")),
        Format("annotated", "Cytoscape.js elements with edge color / error-rate labels",
               partial(annotated.render, ids="qualified")),
        Format("mesh", "Vizceral global/region traffic graph", mesh.render, stamped=True),
        Format("cx", "Cytoscape CX nodes/edges with attribute tables", cx.render, stamped=True),
    )
}


def get_format(name: str) -> Format:
    try:
        return FORMATS[name]
    except KeyError:
        raise ValueError(f"unknown format {name!r}; expected one of {sorted(FORMATS)}") from None


def serialize(document: Dict[str, Any]) -> bytes:
    return orjson.dumps(document, option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE)
