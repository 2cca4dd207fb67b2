"""
Recursive service-graph discovery over a request-count time series.

1) Ask the backend for every destination reached from the outside origin
   (``source_version="unknown"`` by default) and make one root per destination.
2) For each node, ask who it calls, aggregate, attach one child per destination
   and recurse.

A destination that is already on the current root→node path is a call cycle:
it is logged and not expanded, so every path holds each identity at most once.

Failure policy
--------------
- Root query failure raises ``QueryFailure``; the pass yields nothing.
- A failed scoped query leaves that node without children and is logged;
  with ``strict=True`` it raises instead.
- Once ``stop`` is set, no further query is issued and ``DiscoveryAborted``
  is raised.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, List, Optional, Protocol

from meshgraph.errors import DiscoveryAborted, QueryFailure
from meshgraph.graph.traffic import aggregate
from meshgraph.graph.tree import ZERO, EdgeCounters, Node, ServiceIdentity
from meshgraph.io.prometheus import Sample, graph_link

log = logging.getLogger(__name__)

VALID_CODES = "[2345][0-9][0-9]"
GROUP_BY = "destination_service,destination_version,response_code"


class MetricsQueryClient(Protocol):
    def instant_query(self, expr: str, at: datetime) -> List[Sample]:
        ...


@dataclass(frozen=True)
class QueryWindow:
    start: datetime
    duration: timedelta

    @property
    def end(self) -> datetime:
        return self.start + self.duration

    @classmethod
    def anchored(cls, offset: timedelta, duration: timedelta,
                 now: Optional[datetime] = None) -> "QueryWindow":
        """Window of ``duration`` ending at ``now - offset``."""
        end = (now or datetime.now(timezone.utc)) - max(offset, timedelta(0))
        return cls(start=end - duration, duration=duration)


class GraphDiscoveryEngine:
    def __init__(
        self,
        client: MetricsQueryClient,
        metric: str,
        *,
        server: str,
        outside_version: str = "unknown",
        strict: bool = False,
        max_depth: Optional[int] = None,
        stop: Optional[threading.Event] = None,
    ):
        self.client = client
        self.metric = metric
        self.server = server
        self.outside_version = outside_version
        self.strict = strict
        self.max_depth = max_depth
        self.stop = stop

    # ---------------- queries ----------------
    def _rate_expr(self, selector: str, window: QueryWindow) -> str:
        seconds = window.duration.total_seconds()
        return (
            f'sum(rate({self.metric}{{{selector},response_code=~"{VALID_CODES}"}} [{seconds:g}s]) * 60) '
            f"by ({GROUP_BY})"
        )

    def root_query(self, window: QueryWindow) -> str:
        return self._rate_expr(f'source_version="{self.outside_version}"', window)

    def scoped_query(self, identity: ServiceIdentity, window: QueryWindow) -> str:
        return self._rate_expr(
            f'source_service="{identity.name}",source_version="{identity.version}"', window
        )

    def link_for(self, identity: ServiceIdentity) -> str:
        return graph_link(self.server, self.metric, identity)

    def _query(self, expr: str, window: QueryWindow) -> List[Sample]:
        if self.stop is not None and self.stop.is_set():
            raise DiscoveryAborted(f"{self.metric}: discovery stopped")
        return self.client.instant_query(expr, window.end)

    # ---------------- discovery ----------------
    def discover(self, window: QueryWindow,
                 origin: Optional[ServiceIdentity] = None) -> List[Node]:
        """Build every root tree for one pass. ``origin=None`` means the outside origin."""
        if origin is not None:
            root = Node(identity=origin, incoming_edge=ZERO, graph_link=self.link_for(origin))
            log.info("Root Service: %s", origin)
            self._expand(root, window, frozenset({origin}), depth=0)
            return [root]

        expr = self.root_query(window)
        destinations = aggregate(self._query(expr, window))
        log.info("Found [%d] root destinations for %s", len(destinations), self.metric)

        roots: List[Node] = []
        for ident, counters in sorted(destinations.items()):
            root = Node(identity=ident, incoming_edge=counters, graph_link=self.link_for(ident))
            log.info("Root Service: %s", ident)
            self._expand(root, window, frozenset({ident}), depth=0)
            roots.append(root)
        return roots

    def _children_of(self, node: Node, window: QueryWindow) -> Optional[Dict[ServiceIdentity, EdgeCounters]]:
        expr = self.scoped_query(node.identity, window)
        try:
            samples = self._query(expr, window)
        except QueryFailure as e:
            if self.strict:
                raise
            log.warning("skipping subtree of %s: %s", node.identity, e)
            return None
        return aggregate(samples, exclude=node.identity)

    def _expand(self, node: Node, window: QueryWindow,
                on_path: FrozenSet[ServiceIdentity], depth: int) -> None:
        if self.max_depth is not None and depth >= self.max_depth:
            log.info("max depth %d reached at %s", self.max_depth, node.identity)
            return

        destinations = self._children_of(node, window)
        if not destinations:
            return

        for ident, counters in sorted(destinations.items()):
            if ident in on_path:
                log.info("cycle detected: %s -> %s (path: %s)", node.identity, ident,
                         " -> ".join(str(i) for i in node.path()))
                continue
            child = node.add_child(Node(identity=ident, incoming_edge=counters,
                                        graph_link=self.link_for(ident)))
            log.info("Child Service: %s->%s", node.identity, ident)
            self._expand(child, window, on_path | {ident}, depth + 1)
