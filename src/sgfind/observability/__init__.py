"""Observability module for sgfind.

Provides structured logging to the console and an optional JSONL log file.
"""

from sgfind.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "get_logger",
]
