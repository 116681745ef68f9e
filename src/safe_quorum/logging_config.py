"""Structured logging configuration with proposal context.

Every record is stamped with the Safe address and Safe tx hash of the
proposal being processed (set with LogContext), so logs of concurrent signers
and submitters can be correlated per proposal.
"""
from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variables for proposal tracking
safe_var: ContextVar[Optional[str]] = ContextVar("safe", default=None)
safe_tx_hash_var: ContextVar[Optional[str]] = ContextVar("safe_tx_hash", default=None)

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "safe",
        "safe_tx_hash",
    )
)


class ProposalContextFilter(logging.Filter):
    """Logging filter that adds the active proposal context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.safe = safe_var.get()
        record.safe_tx_hash = safe_tx_hash_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "safe", None):
            log_data["safe"] = record.safe
        if getattr(record, "safe_tx_hash", None):
            log_data["safe_tx_hash"] = record.safe_tx_hash

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure logging for the CLI.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON structured logging instead of plain text
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    # stderr keeps stdout clean for command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(ProposalContextFilter())
    root_logger.addHandler(handler)


class LogContext:
    """Context manager for temporary proposal logging context."""

    def __init__(self, safe: Optional[str] = None, safe_tx_hash: Optional[str] = None):
        self.safe = safe
        self.safe_tx_hash = safe_tx_hash
        self._tokens = []

    def __enter__(self) -> "LogContext":
        if self.safe:
            self._tokens.append(safe_var.set(self.safe))
        if self.safe_tx_hash:
            self._tokens.append(safe_tx_hash_var.set(self.safe_tx_hash))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens = []
