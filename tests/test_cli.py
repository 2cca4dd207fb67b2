# tests/test_cli.py
# Test cli.py

import json

import pytest
from click.testing import CliRunner

from conftest import FakeMetricsClient, make_sample
from meshgraph import cli
from meshgraph.errors import QueryFailure


class RecordingClient(FakeMetricsClient):
    """Answers any outside query with one destination, any scoped query with nothing"""

    def instant_query(self, expr, at):
        self.calls.append((expr, at))
        if 'source_version="unknown"' in expr:
            return [make_sample("productpage", "v1", 200, 60.0)]
        return []


@pytest.fixture
def fake_client(monkeypatch):
    client = RecordingClient()
    created = []

    def factory(server, timeout=10.0, session=None):
        created.append((server, timeout))
        return client

    monkeypatch.setattr(cli, "PrometheusClient", factory)
    monkeypatch.delenv("PROMETHEUS_SERVER", raising=False)
    client.created = created
    return client


class TestDiscoverCommand:
    def test_prints_document_to_stdout(self, fake_client):
        """Default format is plain"""
        result = CliRunner().invoke(cli.main, ["discover", "--server", "http://p:9090"])
        assert result.exit_code == 0, result.output
        doc = json.loads(result.stdout)
        assert doc["elements"]["nodes"][0]["data"]["name"] == "productpage (v1)"
        assert fake_client.created == [("http://p:9090", 10.0)]

    def test_writes_one_file_per_signal(self, fake_client, tmp_path):
        """Several signals → suffixed files"""
        out = tmp_path / "graph.json"
        result = CliRunner().invoke(cli.main, [
            "discover", "--signal", "a_total", "--signal", "b_total", "--format", "mesh", "--out", str(out),
        ])
        assert result.exit_code == 0, result.output
        for sig in ("a_total", "b_total"):
            doc = json.loads((tmp_path / f"graph.{sig}.json").read_text())
            assert doc["renderer"] == "global"

    def test_single_signal_writes_exact_path(self, fake_client, tmp_path):
        """One signal → --out as given"""
        out = tmp_path / "nested" / "graph.json"
        result = CliRunner().invoke(cli.main, ["discover", "--format", "cx", "--out", str(out)])
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["nodes"][0]["n"] == "productpage (v1)"

    def test_origin_option(self, fake_client):
        """--origin starts from a named service"""
        result = CliRunner().invoke(cli.main, ["discover", "--origin", "reviews.default:v2"])
        assert result.exit_code == 0, result.output
        doc = json.loads(result.stdout)
        assert doc["elements"]["nodes"][0]["data"]["id"] == "reviews.default (v2)"
        assert all('source_version="unknown"' not in e for e, _ in fake_client.calls)

    def test_bad_origin(self, fake_client):
        """--origin needs name:version"""
        result = CliRunner().invoke(cli.main, ["discover", "--origin", "reviews"])
        assert result.exit_code != 0

    def test_bad_duration_is_reported(self, fake_client):
        """Config errors exit 1 with a message"""
        result = CliRunner().invoke(cli.main, ["discover", "--interval", "soon"])
        assert result.exit_code == 1
        assert "invalid duration" in result.output

    def test_root_failure_exits_nonzero(self, fake_client):
        """A failed pass yields no document and exit code 1"""
        def failing(expr, at):
            raise QueryFailure(expr, "backend down")

        fake_client.instant_query = failing
        result = CliRunner().invoke(cli.main, ["discover"])
        assert result.exit_code == 1
        assert "backend down" in result.output
        assert "discovery failed for: istio_request_count" in result.output
        assert result.stdout == ""


class TestOtherCommands:
    def test_watch_runs_count_passes(self, fake_client, monkeypatch):
        """--count bounds the loop"""
        monkeypatch.setattr("meshgraph.runner.time.sleep", lambda s: None)
        result = CliRunner().invoke(cli.main, ["watch", "--count", "2", "--interval", "1s"])
        assert result.exit_code == 0, result.output
        assert "ran 2 passes" in result.output

    def test_formats_lists_registry(self):
        """Every format name is listed"""
        result = CliRunner().invoke(cli.main, ["formats"])
        assert result.exit_code == 0
        for name in ("plain", "plain-indexed", "annotated", "mesh", "cx"):
            assert name in result.output
