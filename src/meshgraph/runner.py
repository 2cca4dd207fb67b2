"""
One discovery pass per configured root signal, run concurrently.

Each signal gets its own worker thread, engine and tree set; workers share
nothing mutable. ``run_pass`` waits for all of them (or the pass deadline) and
returns one ``PassResult`` per signal, in signal order. At the deadline the
pass stop event is set, so late workers issue no further queries. ``watch``
repeats passes on a fixed interval.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from meshgraph.config import Settings
from meshgraph.errors import MeshGraphError
from meshgraph.export.formats import Format
from meshgraph.graph.discover import GraphDiscoveryEngine, MetricsQueryClient, QueryWindow
from meshgraph.graph.tree import Node, ServiceIdentity, count_nodes

log = logging.getLogger(__name__)


@dataclass
class PassResult:
    signal: str
    roots: List[Node] = field(default_factory=list)
    document: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _work(signal: str, settings: Settings, client: MetricsQueryClient, fmt: Format,
          window: QueryWindow, origin: Optional[ServiceIdentity],
          stop: threading.Event) -> PassResult:
    engine = GraphDiscoveryEngine(
        client,
        signal,
        server=settings.server,
        outside_version=settings.outside_version,
        strict=settings.strict,
        max_depth=settings.max_depth,
        stop=stop,
    )
    roots = engine.discover(window, origin=origin)
    log.info("[%s] discovered %d roots, %d nodes", signal, len(roots), count_nodes(roots))
    document = fmt.render(roots, timestamp=int(window.end.timestamp()))
    return PassResult(signal=signal, roots=roots, document=document)


def run_pass(settings: Settings, client: MetricsQueryClient, fmt: Format,
             now: Optional[datetime] = None,
             origin: Optional[ServiceIdentity] = None) -> List[PassResult]:
    window = QueryWindow.anchored(settings.offset, settings.interval, now=now)
    stop = threading.Event()
    pool = ThreadPoolExecutor(max_workers=len(settings.signals), thread_name_prefix="discover")
    try:
        futures = {
            sig: pool.submit(_work, sig, settings, client, fmt, window, origin, stop)
            for sig in settings.signals
        }
        done, pending = wait(futures.values(), timeout=settings.pass_deadline)
        if pending:
            stop.set()

        results: List[PassResult] = []
        for sig, fut in futures.items():
            if fut not in done:
                fut.cancel()
                log.error("[%s] pass deadline of %ss exceeded", sig, settings.pass_deadline)
                results.append(PassResult(signal=sig, error=f"deadline of {settings.pass_deadline}s exceeded"))
                continue
            try:
                results.append(fut.result())
            except MeshGraphError as e:
                log.error("[%s] pass failed: %s", sig, e)
                results.append(PassResult(signal=sig, error=str(e)))
            except Exception as e:
                log.exception("[%s] worker crashed", sig)
                results.append(PassResult(signal=sig, error=f"{type(e).__name__}: {e}"))
        return results
    finally:
        # late workers stop at their next query; the in-flight one is bounded by query_timeout
        pool.shutdown(wait=False, cancel_futures=True)


def watch(settings: Settings, client: MetricsQueryClient, fmt: Format,
          on_result: Callable[[PassResult], None],
          count: Optional[int] = None,
          origin: Optional[ServiceIdentity] = None,
          sleep: Optional[Callable[[float], None]] = None) -> int:
    """Run passes every ``settings.interval``; returns the number of passes run."""
    sleep = sleep or time.sleep
    passes = 0
    while count is None or passes < count:
        if passes:
            sleep(settings.interval.total_seconds())
        for res in run_pass(settings, client, fmt, now=datetime.now(timezone.utc), origin=origin):
            on_result(res)
        passes += 1
    return passes
