"""Logging configuration for the nixdelta CLI.

Two modes:

* plain text -- ``%(asctime)s  %(levelname)-8s  %(name)s  %(message)s`` on
  stderr, the default;
* structured -- one JSON object per line, enabled with
  ``NIXDELTA_STRUCTURED_LOGGING=true`` for log shippers.

Output schema per structured line::

    {
        "timestamp": "2026-05-15T12:34:56.789012+00:00",
        "level": "WARNING",
        "logger": "delta_engine.builder.snapshot_builder",
        "message": "Skipping ...",
        "exc_info": "Traceback ..."   // only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from delta_engine.config import Settings

TEXT_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        store_path = getattr(record, "store_path", None)
        if store_path is not None:
            payload["store_path"] = store_path

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Install a single stderr handler on the root logger.

    Level is DEBUG when ``settings.debug`` is set, WARNING otherwise, so that
    normal runs only surface skipped records and errors.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.WARNING)
