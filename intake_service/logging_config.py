"""Structured JSON logging for Cloud Run, plain text locally.

python-json-logger with GCP Cloud Logging severity mapping; request ids
come from the request-id middleware.
"""

from __future__ import annotations

import logging
import os
import uuid

from pythonjsonlogger.json import JsonFormatter


class GCPJsonFormatter(JsonFormatter):
    """JSON formatter that emits a Cloud Logging ``severity`` field."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["severity"] = record.levelname
        log_record.pop("levelname", None)
        request_id = getattr(record, "request_id", None)
        if request_id:
            log_record["request_id"] = request_id


def setup_logging(*, level: str | None = None) -> None:
    is_cloud_run = bool(os.getenv("K_SERVICE"))
    level = level or os.getenv("LOG_LEVEL", "INFO")

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if is_cloud_run:
        handler.setFormatter(GCPJsonFormatter(
            fmt="%(message)s %(name)s %(funcName)s %(lineno)d",
            rename_fields={"name": "logger"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d  %(message)s",
            datefmt="%H:%M:%S",
        ))

    root.addHandler(handler)
    # Signed URLs and bearer tokens show up in httpx request logs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:16]
