"""Logging setup: every record is tagged with the integration step that emitted it."""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone

from graph_qualys.services.step_context import get_step_id

# Attributes every LogRecord carries, plus the ones added while formatting.
# Anything else on a record came in through ``extra=`` and is emitted as-is.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "step", "step_prefix"}

# Libraries that log every HTTP exchange at INFO; the executor already does
_NOISY_LOGGERS = ("httpx", "httpcore")


class StepContextFilter(logging.Filter):
    """Copy the current step ID onto each record as ``record.step``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.step = get_step_id()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, ready for a log shipper."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        step = getattr(record, "step", "")
        if step:
            entry["step"] = step

        entry.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``2020-06-01 12:00:00 INFO     [fetch-hosts] logger - message`` in UTC."""

    converter = time.gmtime

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-8s %(step_prefix)s%(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        step = getattr(record, "step", "")
        record.step_prefix = f"[{step}] " if step else ""
        return super().format(record)


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger. Call once at startup."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Drop handlers from an earlier call so output is not duplicated
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(StepContextFilter())
    handler.setFormatter(JSONFormatter() if log_format.lower() == "json" else TextFormatter())
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
