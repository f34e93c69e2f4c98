"""Logging setup with run/source context for scheduled invocations.

Module code logs through ``logging.getLogger(__name__)``; entry points call
``setup_logging`` once and may wrap a logger with ``with_context`` to stamp
``run_id``/``source_id``/``stage`` onto every record.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any

CONTEXT_FIELDS = ("run_id", "source_id", "stage", "job")


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in CONTEXT_FIELDS:
            if hasattr(record, k):
                base[k] = getattr(record, k)

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Format log records as ``LEVEL logger [ctx] message``."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [record.levelname, record.name]

        ctx = [
            f"{k.replace('_id', '')}={getattr(record, k)}"
            for k in CONTEXT_FIELDS
            if getattr(record, k, None)
        ]
        if ctx:
            parts.append("[" + " ".join(ctx) + "]")

        parts.append(record.getMessage())
        s = " ".join(parts)

        if record.exc_info:
            s += "\n" + self.formatException(record.exc_info)
        return s


def setup_logging(level: str = "INFO", json_logs: bool = False) -> logging.Logger:
    """Configure the ``calendar_ingest`` and ``adapter`` logger trees."""
    fmt = JsonFormatter() if json_logs else TextFormatter()
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(fmt)

    root = None
    for name in ("calendar_ingest", "adapter"):
        logger = logging.getLogger(name)
        logger.setLevel(log_level)
        logger.propagate = False
        # Replace handlers so repeated calls do not duplicate output
        for h in list(logger.handlers):
            logger.removeHandler(h)
        logger.addHandler(handler)
        root = root or logger
    return root


class ContextAdapter(logging.LoggerAdapter):
    """Merge adapter context with per-call ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra", {})
        merged = dict(self.extra)
        merged.update(extra)
        kwargs["extra"] = merged
        return msg, kwargs


def with_context(logger: logging.Logger, **context: Any) -> ContextAdapter:
    """Wrap ``logger`` so every record carries the given context fields."""
    return ContextAdapter(logger, {k: v for k, v in context.items() if v is not None})
