"""
Runtime settings.

Precedence: YAML file < environment (PROMETHEUS_SERVER) < explicit overrides
(the CLI flags). Example file:

    server: http://prometheus.istio-system:9090
    offset: 5m
    interval: 30s
    signals: [istio_request_count]
    query_timeout: 10
    pass_deadline: 120
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from meshgraph.errors import ConfigError

DEFAULT_SERVER = "http://localhost:9090"
DEFAULT_SIGNALS = ["istio_request_count"]

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: Any) -> timedelta:
    """'30s', '5m', '1h30m', '2d' (or plain seconds) -> timedelta."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    s = str(value).strip().lower()
    if not s:
        raise ConfigError("empty duration")
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(s):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(s):
        raise ConfigError(f"invalid duration {value!r} (expected e.g. 30s, 5m, 1h, 1d)")
    return timedelta(seconds=total)


@dataclass
class Settings:
    server: str = DEFAULT_SERVER
    offset: timedelta = timedelta(0)
    interval: timedelta = timedelta(seconds=30)
    signals: List[str] = field(default_factory=lambda: list(DEFAULT_SIGNALS))
    query_timeout: float = 10.0
    pass_deadline: Optional[float] = None
    strict: bool = False
    max_depth: Optional[int] = None
    outside_version: str = "unknown"

    def validate(self) -> "Settings":
        if not self.server:
            raise ConfigError("server must be set")
        if not self.signals:
            raise ConfigError("at least one signal is required")
        if self.interval.total_seconds() <= 0:
            raise ConfigError("interval must be positive")
        if self.query_timeout <= 0:
            raise ConfigError("query_timeout must be positive")
        if self.pass_deadline is not None and self.pass_deadline <= 0:
            raise ConfigError("pass_deadline must be positive")
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigError("max_depth must be >= 0")
        return self


def _coerce(raw: Dict[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown settings: {unknown}")
    out = dict(raw)
    for key in ("offset", "interval"):
        if key in out:
            out[key] = parse_duration(out[key])
    if "signals" in out:
        sig = out["signals"]
        out["signals"] = [sig] if isinstance(sig, str) else [str(s) for s in (sig or [])]
    for key, conv in (("query_timeout", float), ("pass_deadline", float), ("max_depth", int)):
        if out.get(key) is None:
            continue
        try:
            out[key] = conv(out[key])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key}: expected a number, got {out[key]!r}") from e
    return out


def load_settings(path: Optional[Path] = None, **overrides: Any) -> Settings:
    raw: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigError(f"config file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at top level")
        raw.update(data)

    env_server = os.environ.get("PROMETHEUS_SERVER")
    if env_server:
        raw["server"] = env_server

    raw.update({k: v for k, v in overrides.items() if v is not None})
    return replace(Settings(), **_coerce(raw)).validate()
