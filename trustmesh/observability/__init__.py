"""
Observability module: structured logging.
"""

from trustmesh.observability.logging import StructuredLogger, LogLevel, JsonFormatter, setup_logging

__all__ = [
    "StructuredLogger",
    "LogLevel",
    "JsonFormatter",
    "setup_logging",
]
