"""JSON log lines on stderr.

Every module logs through `logging.getLogger(__name__)` and attaches its
context (issue number, field, project id, error) via `extra=`. The formatter
below emits those attributes under an `extra` key; stdout is left to the CLI's
JSON reports.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

# Attributes every LogRecord carries; anything else came in through `extra=`.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

_QUIET_LOGGERS = ("github", "urllib3")


def _record_extra(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = _record_extra(record)
        if extra:
            line["extra"] = extra
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        # Values such as enums or datetimes fall back to str().
        return json.dumps(line, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: TextIO | None = None) -> None:
    """Install a single JSON handler on the root logger.

    Safe to call more than once: earlier root handlers are replaced.
    """

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    floor = max(root.level, logging.INFO)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(floor)
