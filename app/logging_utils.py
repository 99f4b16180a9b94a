"""
Structured logging helpers for batch upload workflows.

Every line is a compact JSON object so chunk and batch events can be
filtered by ``batch_upload_id`` in log search.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from app.failure_codes import classify_exception


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def log_failure(
    logger: logging.Logger,
    event: str,
    exc: BaseException,
    *,
    level: int = logging.ERROR,
    **fields: Any,
) -> None:
    """
    Emit a structured failure line tagged with the exception's taxonomy code.

    The traceback is attached through ``exc_info`` rather than serialized
    into the JSON payload.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {
        "event": event,
        "error_code": classify_exception(exc).value,
        "error_type": type(exc).__name__,
        "error_message": str(exc),
        **fields,
    }
    logger.log(
        level,
        json.dumps(payload, default=str, sort_keys=True),
        exc_info=(type(exc), exc, exc.__traceback__),
    )
