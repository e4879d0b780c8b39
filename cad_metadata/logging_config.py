"""Logging setup: structured JSON on Cloud Run (or CAD_LOG_JSON), plain text locally.

Every record carries the current request id so polling logs from one
extraction can be correlated across the job, tree and property loops.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

# Python log levels -> Cloud Logging severity strings
_GCP_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}


class RequestIdFilter(logging.Filter):
    """Attach the active request id to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


class GCPJsonFormatter(JsonFormatter):
    """JSON formatter that maps Python log levels to GCP severity."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["severity"] = _GCP_SEVERITY.get(record.levelname, record.levelname)
        log_record.pop("levelname", None)


def setup_logging(*, level: str = "INFO", json_logs: bool | None = None) -> None:
    """Configure the root logger.

    JSON output is used when ``json_logs`` is true, or when it is left as
    ``None`` and the process runs on Cloud Run.
    """
    if json_logs is None:
        json_logs = bool(os.getenv("K_SERVICE"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if json_logs:
        handler.setFormatter(GCPJsonFormatter(
            fmt="%(message)s %(name)s %(funcName)s %(lineno)d %(request_id)s",
            rename_fields={"name": "logger"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d [%(request_id)s]  %(message)s",
            datefmt="%H:%M:%S",
        ))

    root.addHandler(handler)

    # httpx logs every request at INFO; polling makes that very noisy.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_request_id() -> str:
    """Generate a unique request ID for trace correlation."""
    return uuid.uuid4().hex[:16]


def bind_request_id(request_id: str) -> None:
    _request_id.set(request_id)