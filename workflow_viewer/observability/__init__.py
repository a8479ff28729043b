"""Observability helpers."""

from workflow_viewer.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_rebuild,
    record_lines,
    record_broadcast,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_rebuild",
    "record_lines",
    "record_broadcast",
]
