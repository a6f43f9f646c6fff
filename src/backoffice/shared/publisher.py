"""EventPublisher port: tells the outside world that something changed.

Publishing happens after the change is committed and its audit entries are
recorded. A failing publisher is logged and ignored; it never fails the
operation that triggered it.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, event_kind: str, order_id: str, payload: dict) -> None: ...


class LoggingPublisher(EventPublisher):
    """Default adapter: emits each event as a structured log line."""

    def publish(self, event_kind: str, order_id: str, payload: dict) -> None:
        logger.info("Event published", event_kind=event_kind, order_id=order_id, **payload)


@dataclass
class PublishedEvent:
    event_kind: str
    order_id: str
    payload: dict = field(default_factory=dict)


class RecordingPublisher(EventPublisher):
    """Keeps every published event in memory for assertions."""

    def __init__(self) -> None:
        self.events: list[PublishedEvent] = []
        self._lock = threading.Lock()

    def publish(self, event_kind: str, order_id: str, payload: dict) -> None:
        with self._lock:
            self.events.append(PublishedEvent(event_kind, str(order_id), dict(payload)))

    def kinds(self) -> list[str]:
        with self._lock:
            return [event.event_kind for event in self.events]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


def publish_safely(publisher: EventPublisher, event_kind: str, order_id: str, payload: dict) -> None:
    try:
        publisher.publish(event_kind, order_id, payload)
    except Exception as exc:  # noqa: BLE001
        logger.error("Event publish failed", event_kind=event_kind, order_id=order_id, error=str(exc))
