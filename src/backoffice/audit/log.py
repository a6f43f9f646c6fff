"""AuditLog: append-only, chronologically ordered history per order.

The log itself is thin: it stamps nothing and decides nothing. It forwards
entries to an ``AuditSink`` (the durable store) and reads them back in
(timestamp, insertion sequence) order.
"""

from abc import ABC, abstractmethod

import structlog

from backoffice.audit.entry import AuditEntry

logger = structlog.get_logger(__name__)


class AuditSink(ABC):
    """Durable store for audit entries."""

    @abstractmethod
    def append(self, entry: AuditEntry) -> AuditEntry:
        """Persist ``entry``, assigning its insertion sequence. Must be durable on return."""
        ...

    @abstractmethod
    def entries_for(self, order_id: str) -> list[AuditEntry]:
        """Return every entry recorded against ``order_id``."""
        ...


class AuditLog:
    def __init__(self, sink: AuditSink) -> None:
        self.sink = sink

    def append(self, entries: list[AuditEntry]) -> list[AuditEntry]:
        recorded = [self.sink.append(entry) for entry in entries]
        for entry in recorded:
            logger.info(
                "Audit entry recorded",
                order_id=str(entry.order_id),
                event_kind=entry.event_kind,
                actor=entry.actor,
                sequence=entry.sequence,
            )
        return recorded

    def history(self, order_id: str) -> list[AuditEntry]:
        return sorted(self.sink.entries_for(order_id), key=AuditEntry.sort_key)
