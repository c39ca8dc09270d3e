"""Application logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "contrag.ingest.audit"
TELEMETRY_LOGGER_NAME = "contrag.telemetry"


class MinimalJSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON string.

    Dict messages (as produced by :func:`contrag.telemetry.log_event`) are
    merged into the top-level object; anything else lands under ``message``.
    """

    _RESERVED_KEYS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z")
        )

        log_record: dict[str, Any] = {
            "ts": timestamp,
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            log_record.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                log_record["message"] = message

        if record.exc_info and "exc" not in log_record:
            log_record["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._RESERVED_KEYS or key.startswith("_"):
                continue
            log_record[key] = value

        return json.dumps(log_record, ensure_ascii=False, default=str)


def configure_logging(
    level: str | None = None,
    log_dir: str | Path | None = None,
    telemetry_level: str | None = None,
) -> None:
    """Configure JSON logging to stderr plus a file-backed ingest audit trail.

    ``level`` defaults to ``CONTRAG_LOG_LEVEL`` (or ``INFO``) and ``log_dir``
    to ``CONTRAG_LOG_DIR`` (or ``logs``). Structured telemetry events from
    ``contrag.telemetry`` follow ``CONTRAG_TELEMETRY_LEVEL`` when set, so
    per-call cache and store events can be silenced without hiding the rest.
    """

    resolved_level = (level or os.getenv("CONTRAG_LOG_LEVEL") or "INFO").upper()
    resolved_telemetry = (telemetry_level or os.getenv("CONTRAG_TELEMETRY_LEVEL") or resolved_level).upper()
    directory = Path(log_dir or os.getenv("CONTRAG_LOG_DIR") or "logs")
    directory.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": MinimalJSONFormatter}},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                },
                "ingest_audit": {
                    "class": "logging.FileHandler",
                    "filename": str(directory / "ingest_audit.log"),
                    "mode": "a",
                    "encoding": "utf-8",
                    "formatter": "json",
                },
            },
            "root": {
                "level": resolved_level,
                "handlers": ["default"],
            },
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "level": "INFO",
                    "handlers": ["ingest_audit"],
                    "propagate": False,
                },
                TELEMETRY_LOGGER_NAME: {"level": resolved_telemetry},
            },
        }
    )


__all__ = ["AUDIT_LOGGER_NAME", "MinimalJSONFormatter", "TELEMETRY_LOGGER_NAME", "configure_logging"]
