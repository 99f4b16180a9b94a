"""
app/events.py

Domain event publishing for certification lifecycle notifications.

Publishers are called only after the database transaction that created the
subject has committed. A publisher failure never undoes persisted work;
callers log it and move on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.config import get_batch_upload_settings
from app.logging_utils import log_event

logger = logging.getLogger(__name__)

CERTIFICATION_CREATED = "CertificationCreated"


class EventPublisher(Protocol):
    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class LoggingEventPublisher:
    """
    Default publisher: emits each event as a structured log line.
    """

    def __init__(self, *, enabled: bool | None = None) -> None:
        if enabled is None:
            enabled = get_batch_upload_settings().notifications_enabled
        self._enabled = enabled

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        if not self._enabled:
            return
        log_event(
            logger,
            logging.INFO,
            "domain_event_published",
            event_name=event_name,
            **{key: str(value) for key, value in payload.items()},
        )


@dataclass
class RecordingEventPublisher:
    """
    In-memory publisher that keeps every event it receives.
    """

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads_for(self, event_name: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_name]
