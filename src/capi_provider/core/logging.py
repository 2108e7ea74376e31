"""Logging configuration with structured JSON support and per-claim context."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

# Name of the claim currently being provisioned or released
_CLAIM_CONTEXT: ContextVar[str] = ContextVar("claim_context", default="")

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Format logs as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "lineno": record.lineno,
        }
        claim = _CLAIM_CONTEXT.get()
        if claim:
            payload["claim"] = claim

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def get_claim_context() -> str:
    return _CLAIM_CONTEXT.get()


@contextmanager
def claim_context(name: str) -> Iterator[None]:
    """Attach ``name`` to every record logged inside the block."""
    token = _CLAIM_CONTEXT.set(name)
    try:
        yield
    finally:
        _CLAIM_CONTEXT.reset(token)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure global logging."""
    handler = logging.StreamHandler(sys.stderr)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)

    # Suppress noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance."""
    return logging.getLogger(name)
