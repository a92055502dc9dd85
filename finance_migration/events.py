"""
Engine event emission.

The engine announces lifecycle milestones by name; transport is the sink's
business.  Payload keys are camelCase so they can be forwarded as-is to
JSON consumers.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from finance_migration.logging_config import get_logger

logger = get_logger("events")

BATCH_CREATED = "import.batch.created"
BATCH_VALIDATED = "import.batch.validated"
BATCH_COMMITTED = "import.batch.committed"
BATCH_REVERTED = "import.batch.reverted"
EXPORT_COMPLETED = "export.completed"


@runtime_checkable
class EventSink(Protocol):
    def emit(self, name: str, payload: dict[str, Any]) -> None:
        ...


class NullEventSink:
    def emit(self, name: str, payload: dict[str, Any]) -> None:
        return None


class LoggingEventSink:
    """Writes every event to the structured log."""

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        logger.info("event_emitted", extra={"event_name": name, "payload": payload})


class RecordingEventSink:
    """Keeps emitted events in order; for tests and the CLI summary."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        self.events.append((name, dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> list[dict[str, Any]]:
        return [payload for n, payload in self.events if n == name]

    def clear(self) -> None:
        self.events.clear()
