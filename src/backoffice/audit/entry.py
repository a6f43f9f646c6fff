"""AuditEntry aggregate: one immutable line in an order's history.

Entries are created by the workflows alongside the state change they
describe, and handed to the AuditLog only after the changed aggregate has
been durably saved.
"""

from enum import Enum
from uuid import uuid4

from protean.fields import DateTime, Identifier, Integer, String, Text

from backoffice.domain import backoffice


class AuditEventKind(Enum):
    STATUS_CHANGED = "StatusChanged"
    PAYMENT_VERIFIED = "PaymentVerified"
    SHIPMENT_CREATED = "ShipmentCreated"
    RETURN_APPROVED = "ReturnApproved"
    RETURN_DENIED = "ReturnDenied"
    REFUND_ISSUED = "RefundIssued"
    ISSUE_UPDATED = "IssueUpdated"
    NOTE_ADDED = "NoteAdded"


@backoffice.aggregate
class AuditEntry:
    order_id = Identifier(required=True)
    timestamp = DateTime(required=True)
    actor = String(required=True, max_length=255)
    event_kind = String(required=True, choices=AuditEventKind)
    note = Text()
    # Assigned by the sink on append; breaks timestamp ties
    sequence = Integer(default=0)

    @classmethod
    def record(cls, order_id, event_kind: AuditEventKind, actor, timestamp, note=""):
        return cls(
            id=str(uuid4()),
            order_id=str(order_id),
            timestamp=timestamp,
            actor=actor,
            event_kind=event_kind.value,
            note=note or "",
        )

    def sort_key(self):
        return (self.timestamp, self.sequence)
