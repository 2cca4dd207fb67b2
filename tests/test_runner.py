# tests/test_runner.py
# Test runner.py

import threading
import time
from datetime import datetime, timedelta, timezone

from conftest import FakeMetricsClient, make_sample
from meshgraph.config import Settings
from meshgraph.export.formats import get_format
from meshgraph.graph.discover import GraphDiscoveryEngine, QueryWindow
from meshgraph.runner import run_pass, watch

NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)


def _backend(settings, signals_to_dest):
    """One outside destination per signal"""
    window = QueryWindow.anchored(settings.offset, settings.interval, now=NOW)
    responses = {}
    for sig, dest in signals_to_dest.items():
        engine = GraphDiscoveryEngine(None, sig, server=settings.server)
        responses[engine.root_query(window)] = [make_sample(dest, "v1", 200, 10.0)]
    return FakeMetricsClient(responses), window


class TestRunPass:
    def test_one_result_per_signal_in_order(self):
        """Each signal yields its own tree set and document"""
        settings = Settings(signals=["sig_a", "sig_b"])
        client, _ = _backend(settings, {"sig_a": "alpha", "sig_b": "beta"})
        results = run_pass(settings, client, get_format("plain"), now=NOW)
        assert [r.signal for r in results] == ["sig_a", "sig_b"]
        assert all(r.ok for r in results)
        assert [r.roots[0].identity.name for r in results] == ["alpha", "beta"]
        assert results[0].document["elements"]["nodes"][0]["data"]["name"] == "alpha (v1)"

    def test_stamped_document_uses_window_end(self):
        """mesh 'updated' is the query instant"""
        settings = Settings(signals=["sig_a"], offset=timedelta(minutes=1))
        client, window = _backend(settings, {"sig_a": "alpha"})
        (res,) = run_pass(settings, client, get_format("mesh"), now=NOW)
        assert res.document["updated"] == int(window.end.timestamp())

    def test_failed_worker_does_not_affect_others(self):
        """A root query failure is reported for that signal only"""
        settings = Settings(signals=["sig_a", "sig_b"])
        client, window = _backend(settings, {"sig_a": "alpha", "sig_b": "beta"})
        failing = GraphDiscoveryEngine(None, "sig_b", server=settings.server).root_query(window)
        client.failures.add(failing)
        a, b = run_pass(settings, client, get_format("plain"), now=NOW)
        assert a.ok and a.roots
        assert not b.ok
        assert "backend unreachable" in b.error
        assert b.document is None

    def test_deadline_exceeded(self):
        """Workers still running at the deadline are reported as failed"""
        release = threading.Event()

        class SlowClient:
            def instant_query(self, expr, at):
                release.wait(5)
                return []

        settings = Settings(signals=["sig_a"], pass_deadline=0.05)
        try:
            (res,) = run_pass(settings, SlowClient(), get_format("plain"), now=NOW)
        finally:
            release.set()
        assert not res.ok
        assert "deadline" in res.error

    def test_no_query_after_deadline(self):
        """A late worker stops at its next query instead of walking on"""
        gate = threading.Event()
        calls = []

        class ChainClient:
            """Every answer names a new service, so expansion would never end"""

            def instant_query(self, expr, at):
                calls.append(expr)
                gate.wait(5)
                return [make_sample(f"svc{len(calls)}", "v1", 200, 1.0)]

        settings = Settings(signals=["sig_a"], pass_deadline=0.05)
        (res,) = run_pass(settings, ChainClient(), get_format("plain"), now=NOW)
        gate.set()
        time.sleep(0.3)
        assert not res.ok
        assert len(calls) == 1

    def test_unexpected_worker_error_is_contained(self):
        """A non-meshgraph exception fails that signal only"""
        settings = Settings(signals=["sig_a", "sig_b"])
        client, window = _backend(settings, {"sig_a": "alpha", "sig_b": "beta"})
        broken = GraphDiscoveryEngine(None, "sig_b", server=settings.server).root_query(window)
        answer = client.instant_query

        def instant_query(expr, at):
            if expr == broken:
                raise AttributeError("'list' object has no attribute 'get'")
            return answer(expr, at)

        client.instant_query = instant_query
        a, b = run_pass(settings, client, get_format("plain"), now=NOW)
        assert a.ok and a.roots
        assert not b.ok
        assert b.error.startswith("AttributeError")


class TestWatch:
    def test_runs_count_passes_and_sleeps_between(self):
        """count passes, interval sleeps in between"""
        settings = Settings(signals=["sig_a"], interval=timedelta(seconds=15))
        sleeps, seen = [], []
        n = watch(settings, FakeMetricsClient(), get_format("plain"), seen.append,
                  count=3, sleep=sleeps.append)
        assert n == 3
        assert len(seen) == 3
        assert sleeps == [15.0, 15.0]
