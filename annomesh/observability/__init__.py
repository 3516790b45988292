"""
Observability module: structured logging.
"""

from annomesh.observability.logging import (
    StructuredLogger,
    LogLevel,
    JsonFormatter,
    KeyValueFormatter,
    setup_logging,
)

__all__ = [
    "StructuredLogger",
    "LogLevel",
    "JsonFormatter",
    "KeyValueFormatter",
    "setup_logging",
]
