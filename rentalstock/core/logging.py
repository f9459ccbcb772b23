from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var

# Loggers that duplicate what the request middleware and scheduler already report.
_QUIET_LOGGERS = ("apscheduler", "uvicorn.access", "httpx")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    context: dict[str, Any] = {}
    request_id = request_id_ctx_var.get()
    if request_id:
        context["request_id"] = request_id
    principal = principal_ctx_var.get()
    if principal:
        context["principal"] = principal
    extra = getattr(record, "extra_data", None)
    if isinstance(extra, Mapping):
        context.update(extra)
    return context


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra_data`` keys are merged at the top level."""

    def __init__(self, service: str = "rentalstock", env: str | None = None) -> None:
        super().__init__()
        self.service = service
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "event": record.getMessage(),
        }
        if self.env:
            payload["env"] = self.env
        payload.update(_context(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


class TextLogFormatter(logging.Formatter):
    """Human readable variant for local runs: ``LEVEL logger event key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        fields = " ".join(f"{key}={value}" for key, value in _context(record).items())
        line = f"{record.levelname:<7} {record.name} {record.getMessage()}"
        if fields:
            line = f"{line} {fields}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    level: str | int = logging.INFO,
    *,
    fmt: str = "json",
    service: str = "rentalstock",
    env: str | None = None,
) -> None:
    handler = logging.StreamHandler()
    if fmt == "text":
        handler.setFormatter(TextLogFormatter())
    else:
        handler.setFormatter(JsonLogFormatter(service=service, env=env))
    logging.root.handlers = [handler]
    logging.root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
