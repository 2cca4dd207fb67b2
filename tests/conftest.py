# tests/conftest.py
# Shared pytest fixtures

from datetime import datetime, timedelta, timezone

import pytest

from meshgraph.errors import QueryFailure
from meshgraph.graph.discover import GraphDiscoveryEngine, QueryWindow
from meshgraph.graph.tree import EdgeCounters, Node, ServiceIdentity
from meshgraph.io.prometheus import Sample

SERVER = "http://prom:9090"
METRIC = "istio_request_count"


class FakeMetricsClient:
    """Answers instant queries from a dict keyed by the exact query expression."""

    def __init__(self, responses=None, failures=()):
        self.responses = dict(responses or {})
        self.failures = set(failures)
        self.calls = []

    def instant_query(self, expr, at):
        self.calls.append((expr, at))
        if expr in self.failures:
            raise QueryFailure(expr, "backend unreachable")
        return list(self.responses.get(expr, []))


def make_sample(name, version, code, value, **extra):
    labels = {"destination_service": name, "destination_version": version, "response_code": str(code)}
    labels.update(extra)
    return Sample(labels=labels, value=value)


@pytest.fixture
def sample():
    return make_sample


@pytest.fixture
def window():
    """30s window ending 2026-02-10 10:00:30 UTC"""
    return QueryWindow(start=datetime(2026, 2, 10, 10, 0, 0, tzinfo=timezone.utc),
                       duration=timedelta(seconds=30))


@pytest.fixture
def engine_for():
    """Factory: engine over a FakeMetricsClient"""
    def _make(client, **kw):
        return GraphDiscoveryEngine(client, METRIC, server=SERVER, **kw)
    return _make


@pytest.fixture
def checkout_backend(window, engine_for):
    """outside -> checkout (v1) at 120 rpm 2xx; checkout (v1) -> payments (v2) at 38 2xx + 2 5xx"""
    ref = engine_for(FakeMetricsClient())
    checkout = ServiceIdentity("checkout", "v1")
    payments = ServiceIdentity("payments", "v2")
    client = FakeMetricsClient({
        ref.root_query(window): [make_sample("checkout", "v1", 200, 120.0)],
        ref.scoped_query(checkout, window): [
            make_sample("payments", "v2", 200, 38.0),
            make_sample("payments", "v2", 503, 2.0),
        ],
        ref.scoped_query(payments, window): [],
    })
    return client


@pytest.fixture
def sample_tree():
    """frontend (v1) -> [catalog (v1) -> db (v1), cart (v2)]; plus a lone root admin (v1)"""
    frontend = Node(ServiceIdentity("frontend.shop.svc.cluster.local", "v1"),
                    EdgeCounters.from_buckets(rate_2xx=100.0), graph_link="http://prom/f")
    catalog = frontend.add_child(Node(ServiceIdentity("catalog.shop.svc.cluster.local", "v1"),
                                      EdgeCounters.from_buckets(rate_2xx=60.0, rate_4xx=3.0),
                                      graph_link="http://prom/c"))
    catalog.add_child(Node(ServiceIdentity("db.shop.svc.cluster.local", "v1"),
                           EdgeCounters.from_buckets(rate_2xx=50.0, rate_5xx=1.5),
                           graph_link="http://prom/d"))
    frontend.add_child(Node(ServiceIdentity("cart.shop.svc.cluster.local", "v2"),
                            EdgeCounters.from_buckets(rate_3xx=7.25), graph_link="http://prom/k"))
    admin = Node(ServiceIdentity("admin.shop.svc.cluster.local", "v1"),
                 EdgeCounters.from_buckets(rate_2xx=1.0), graph_link="")
    return [frontend, admin]
