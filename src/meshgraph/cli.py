from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

import click

from meshgraph.config import Settings, load_settings
from meshgraph.errors import MeshGraphError
from meshgraph.export.formats import FORMATS, Format, get_format, serialize
from meshgraph.graph.tree import ServiceIdentity
from meshgraph.io.prometheus import PrometheusClient
from meshgraph.runner import PassResult, run_pass, watch


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", count=True, help="-v for progress, -vv for every query.")
def main(verbose: int) -> None:
    """meshgraph CLI (Prometheus request rates → service dependency graph documents)."""
    level = logging.WARNING if verbose == 0 else (logging.INFO if verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="[%(name)s] %(levelname)s %(message)s", force=True)


def _common_options(fn: Callable) -> Callable:
    options = [
        click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     default=None, help="YAML settings file."),
        click.option("--server", default=None,
                     help="Prometheus server URL (can be set via PROMETHEUS_SERVER environment variable)."),
        click.option("--offset", default=None, help="Offset (Xm, Xh, or Xd) from now to start metric sample collection."),
        click.option("--interval", default=None, help="Query interval (Xs). Recommended 2 times the scrape interval."),
        click.option("--signal", "signals", multiple=True, help="Root request-count metric; repeatable."),
        click.option("--format", "fmt_name", type=click.Choice(sorted(FORMATS)), default="plain", show_default=True),
        click.option("--origin", default=None, help="Start from 'name:version' instead of outside traffic."),
        click.option("--strict/--lenient", default=None,
                     help="Fail the pass on any query error (default: skip the failed subtree)."),
        click.option("--max-depth", type=int, default=None, help="Stop expanding below this depth."),
        click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
                     help="Write the document here instead of stdout."),
    ]
    for opt in reversed(options):
        fn = opt(fn)
    return fn


def _settings(config_path: Optional[Path], server: Optional[str], offset: Optional[str],
              interval: Optional[str], signals: tuple[str, ...], strict: Optional[bool],
              max_depth: Optional[int]) -> Settings:
    try:
        return load_settings(
            config_path,
            server=server,
            offset=offset,
            interval=interval,
            signals=list(signals) or None,
            strict=strict,
            max_depth=max_depth,
        )
    except MeshGraphError as e:
        raise click.ClickException(str(e))


def _origin(value: Optional[str]) -> Optional[ServiceIdentity]:
    if not value:
        return None
    name, sep, version = value.rpartition(":")
    if not sep or not name or not version:
        raise click.BadParameter(f"expected 'name:version', got {value!r}", param_hint="--origin")
    return ServiceIdentity(name, version)


def _target(out_path: Path, signal: str, n_signals: int) -> Path:
    if n_signals == 1:
        return out_path
    return out_path.with_name(f"{out_path.stem}.{signal}{out_path.suffix}")


def _emitter(out_path: Optional[Path], n_signals: int, command: str) -> Callable[[PassResult], None]:
    def emit(res: PassResult) -> None:
        if not res.ok:
            click.echo(f"[{command}] {res.signal}: pass failed: {res.error}", err=True)
            return
        payload = serialize(res.document)
        if out_path is None:
            click.echo(payload.decode("utf-8"), nl=False)
            return
        target = _target(out_path, res.signal, n_signals)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
        click.echo(f"[{command}] {res.signal}: {len(res.roots)} roots → {target}", err=True)
    return emit


# ---------------- discover ----------------
@main.command("discover")
@_common_options
def discover_cmd(config_path: Optional[Path], server: Optional[str], offset: Optional[str],
                 interval: Optional[str], signals: tuple[str, ...], fmt_name: str,
                 origin: Optional[str], strict: Optional[bool], max_depth: Optional[int],
                 out_path: Optional[Path]) -> None:
    """Run one discovery pass and print (or write) the rendered document."""
    settings = _settings(config_path, server, offset, interval, signals, strict, max_depth)
    fmt: Format = get_format(fmt_name)
    client = PrometheusClient(settings.server, timeout=settings.query_timeout)
    click.echo(f"[discover] server={settings.server} signals={settings.signals} format={fmt.name}", err=True)

    results = run_pass(settings, client, fmt, origin=_origin(origin))
    emit = _emitter(out_path, len(settings.signals), "discover")
    for res in results:
        emit(res)

    failed: List[str] = [r.signal for r in results if not r.ok]
    if failed:
        raise click.ClickException(f"discovery failed for: {', '.join(failed)}")


# ---------------- watch ----------------
@main.command("watch")
@_common_options
@click.option("--count", type=click.IntRange(min=1), default=None,
              help="Stop after this many passes (default: run forever).")
def watch_cmd(config_path: Optional[Path], server: Optional[str], offset: Optional[str],
              interval: Optional[str], signals: tuple[str, ...], fmt_name: str,
              origin: Optional[str], strict: Optional[bool], max_depth: Optional[int],
              out_path: Optional[Path], count: Optional[int]) -> None:
    """Re-run discovery every --interval; failed passes wait for the next tick."""
    settings = _settings(config_path, server, offset, interval, signals, strict, max_depth)
    fmt = get_format(fmt_name)
    client = PrometheusClient(settings.server, timeout=settings.query_timeout)
    click.echo(f"[watch] every {settings.interval.total_seconds():g}s signals={settings.signals}", err=True)
    n = watch(settings, client, fmt, _emitter(out_path, len(settings.signals), "watch"),
              count=count, origin=_origin(origin))
    click.echo(f"[watch] ran {n} passes", err=True)


# ---------------- formats ----------------
@main.command("formats")
def formats_cmd() -> None:
    """List the export formats."""
    for name in sorted(FORMATS):
        click.echo(f"{name:14s} {FORMATS[name].description}")


if __name__ == "__main__":
    main()
