"""
Prometheus HTTP API client (instant queries only).

- ``instant_query`` hits ``/api/v1/query`` and returns the instant vector as a
  list of ``Sample(labels, value)``.
- Anything that is not a successful vector answer raises ``QueryFailure``.
- ``graph_link`` builds the deep link into the Prometheus graph UI that the
  exporters pass through untouched.

Reference: https://prometheus.io/docs/prometheus/latest/querying/api/
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import quote_plus, urljoin

import requests

from meshgraph.errors import QueryFailure
from meshgraph.graph.tree import ServiceIdentity

log = logging.getLogger(__name__)

TF = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Sample:
    labels: Dict[str, str] = field(default_factory=dict)
    value: float = 0.0


def _parse_vector(expr: str, payload: object) -> List[Sample]:
    if not isinstance(payload, dict):
        raise QueryFailure(expr, "response is not a JSON object")
    if payload.get("status") != "success":
        raise QueryFailure(expr, f"{payload.get('errorType', 'error')}: {payload.get('error', 'unknown')}")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise QueryFailure(expr, "malformed response: data is not an object")
    rtype = data.get("resultType")
    if rtype != "vector":
        raise QueryFailure(expr, f"no handling for result type {rtype!r}")

    result = data.get("result") or []
    if not isinstance(result, list):
        raise QueryFailure(expr, "malformed response: result is not a list")

    out: List[Sample] = []
    for item in result:
        metric = (item.get("metric") or {}) if isinstance(item, dict) else None
        if not isinstance(metric, dict):
            raise QueryFailure(expr, f"malformed vector sample {item!r}")
        # value is [<unix ts>, "<float as string>"]
        pair = item.get("value") or [None, "0"]
        try:
            value = float(pair[1])
        except (TypeError, ValueError, IndexError, KeyError):
            log.warning("skipping sample %s with unparsable value %r", metric, pair)
            continue
        out.append(Sample(labels={str(k): str(v) for k, v in metric.items()}, value=value))
    return out


class PrometheusClient:
    def __init__(self, server: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.server = server.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def instant_query(self, expr: str, at: datetime) -> List[Sample]:
        url = urljoin(self.server + "/", "api/v1/query")
        params = {"query": expr, "time": f"{at.timestamp():.3f}", "timeout": f"{self.timeout:g}s"}
        log.debug("executing query %s&time=%s (now=%s)", expr, at.strftime(TF), datetime.now().strftime(TF))
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise QueryFailure(expr, f"{type(e).__name__}: {e}") from e

        try:
            payload = r.json()
        except ValueError:
            payload = None
        if not r.ok:
            # Prometheus reports bad expressions as 400 with a JSON error body
            if isinstance(payload, dict) and payload.get("error"):
                raise QueryFailure(expr, f"HTTP {r.status_code}: {payload['error']}")
            raise QueryFailure(expr, f"HTTP {r.status_code}")
        return _parse_vector(expr, payload)


def graph_link(server: str, metric: str, identity: ServiceIdentity) -> str:
    expr = f'{metric}{{destination_service="{identity.name}",destination_version="{identity.version}"}}'
    return f"{server.rstrip('/')}/graph?g0.range_input=1h&g0.tab=0&g0.expr={quote_plus(expr)}"
