from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson

PACKAGE_LOGGER = "autoreact"

_run_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("run_context", default={})

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def _record_payload(record: logging.LogRecord) -> dict[str, Any]:
    payload: dict[str, Any] = dict(_run_context.get({}))
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or key.startswith("_"):
            continue
        payload[key] = value
    return payload


class ORJSONFormatter(logging.Formatter):
    """Structured JSON log formatter using orjson."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - fmt
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key, value in _record_payload(record).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Human-readable line: ``[autoreact <ts>] message {payload}``."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")
        line = f"[{PACKAGE_LOGGER} {ts}] {record.getMessage()}"
        if record.levelno >= logging.WARNING:
            line = f"{line} ({record.levelname})"
        payload = _record_payload(record)
        if payload:
            line = f"{line} {orjson.dumps(payload, default=str).decode()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(log_level: str = "INFO", log_file: Path | None = None, enabled: bool = True) -> None:
    """Configure the root logger; ``enabled=False`` keeps only warnings and errors."""

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(ConsoleFormatter())
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(ORJSONFormatter())
        root.addHandler(file_handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.NOTSET if enabled else logging.WARNING)


def set_run_context(**kwargs: Any) -> None:
    """Attach contextual metadata to subsequent log records."""

    _run_context.set(dict(kwargs))
