"""
Dependency tree shared by discovery and every exporter.

A discovery pass produces a list of root ``Node`` objects. Each node owns its
children; ``parent`` is a weak back-reference so that a subtree never keeps its
ancestors alive. Nodes are not mutated once their subtree has been discovered.
"""
from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple


@dataclass(frozen=True, order=True)
class ServiceIdentity:
    name: str
    version: str

    @property
    def qualified(self) -> str:
        """'reviews.default.svc.cluster.local (v2)'"""
        return f"{self.name} ({self.version})"

    @property
    def display(self) -> str:
        """Bare service name (first DNS label) plus version: 'reviews (v2)'."""
        return f"{self.name.split('.')[0]} ({self.version})"

    def __str__(self) -> str:
        return self.qualified


@dataclass(frozen=True)
class EdgeCounters:
    """Requests per minute on one edge, split by response status class."""
    total: float = 0.0
    rate_2xx: float = 0.0
    rate_3xx: float = 0.0
    rate_4xx: float = 0.0
    rate_5xx: float = 0.0

    @classmethod
    def from_buckets(cls, rate_2xx: float = 0.0, rate_3xx: float = 0.0,
                     rate_4xx: float = 0.0, rate_5xx: float = 0.0) -> "EdgeCounters":
        return cls(
            total=rate_2xx + rate_3xx + rate_4xx + rate_5xx,
            rate_2xx=rate_2xx,
            rate_3xx=rate_3xx,
            rate_4xx=rate_4xx,
            rate_5xx=rate_5xx,
        )

    def buckets(self) -> List[Tuple[str, float]]:
        return [
            ("2xx", self.rate_2xx),
            ("3xx", self.rate_3xx),
            ("4xx", self.rate_4xx),
            ("5xx", self.rate_5xx),
        ]


ZERO = EdgeCounters()


@dataclass(eq=False)
class Node:
    identity: ServiceIdentity
    incoming_edge: EdgeCounters = ZERO
    graph_link: str = ""
    children: List["Node"] = field(default_factory=list)
    _parent: Optional[weakref.ReferenceType] = field(default=None, repr=False)

    @property
    def parent(self) -> Optional["Node"]:
        return self._parent() if self._parent is not None else None

    @property
    def is_root(self) -> bool:
        return self._parent is None

    def add_child(self, child: "Node") -> "Node":
        child._parent = weakref.ref(self)
        self.children.append(child)
        return child

    def path(self) -> List[ServiceIdentity]:
        """Identities from the root down to (and including) this node."""
        out: List[ServiceIdentity] = []
        n: Optional[Node] = self
        while n is not None:
            out.append(n.identity)
            n = n.parent
        out.reverse()
        return out

    def walk(self) -> Iterator["Node"]:
        """Pre-order: this node, then each child subtree in child order."""
        stack = [self]
        while stack:
            n = stack.pop()
            yield n
            stack.extend(reversed(n.children))


def preorder(roots: Iterable[Node]) -> Iterator[Node]:
    for root in roots:
        yield from root.walk()


def count_nodes(roots: Iterable[Node]) -> int:
    return sum(1 for _ in preorder(roots))
