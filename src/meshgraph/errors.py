"""
Error taxonomy.

Only failures that change control flow are exceptions. Malformed samples,
unknown status classes and call cycles are reported through logging and never
raised.
"""
from __future__ import annotations


class MeshGraphError(Exception):
    """Base class for every error raised by meshgraph."""


class ConfigError(MeshGraphError):
    """Invalid settings (bad duration, empty server, no signals, ...)."""


class QueryFailure(MeshGraphError):
    """The metrics backend could not answer a query with an instant vector."""

    def __init__(self, expr: str, reason: str):
        super().__init__(f"query failed: {reason} (expr={expr})")
        self.expr = expr
        self.reason = reason


class DiscoveryAborted(MeshGraphError):
    """The pass was stopped (deadline) before discovery finished."""
