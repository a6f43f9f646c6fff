"""Issue aggregate: a customer problem raised against an order.

Issues live independently of returns and refunds: an issue can be resolved
without any change to the order, and a refund never closes an issue.

State Machine:
    OPEN → IN_PROGRESS → RESOLVED
    OPEN → RESOLVED
    RESOLVED is terminal.
"""

from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text

from backoffice.domain import backoffice
from backoffice.errors import InvalidTransition, MissingResolution


class IssueStatus(Enum):
    OPEN = "Open"
    IN_PROGRESS = "InProgress"
    RESOLVED = "Resolved"


class IssuePriority(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


_VALID_TRANSITIONS = {
    IssueStatus.OPEN: {IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED},
    IssueStatus.IN_PROGRESS: {IssueStatus.RESOLVED},
    IssueStatus.RESOLVED: set(),  # Terminal
}


@backoffice.aggregate
class Issue:
    order_id = Identifier(required=True)
    type = String(required=True, max_length=100)
    priority = String(
        choices=IssuePriority,
        default=IssuePriority.MEDIUM.value,
    )
    status = String(
        choices=IssueStatus,
        default=IssueStatus.OPEN.value,
    )
    description = Text(required=True)
    resolution = Text()
    reported_at = DateTime()
    resolved_at = DateTime()

    @property
    def version(self) -> int:
        return self._version + 1

    @invariant.post
    def resolved_issue_has_resolution(self):
        if self.status == IssueStatus.RESOLVED.value and not (self.resolution or "").strip():
            raise ValidationError({"resolution": ["A resolved issue must carry a resolution"]})

    @classmethod
    def report(cls, issue_id, order_id, issue_type, priority, description, reported_at):
        return cls(
            id=issue_id,
            order_id=str(order_id),
            type=issue_type,
            priority=IssuePriority(priority).value,
            status=IssueStatus.OPEN.value,
            description=description,
            reported_at=reported_at,
        )

    def _assert_not_resolved(self, attempted: str) -> None:
        if self.status == IssueStatus.RESOLVED.value:
            raise InvalidTransition(
                {"status": ["Resolved issues cannot be changed"]},
                aggregate_id=self.id,
                current=self.status,
                attempted=attempted,
            )

    def advance(self, new_status: IssueStatus, resolution_note, at) -> bool:
        """Move the issue forward. Returns False when already in ``new_status``."""
        self._assert_not_resolved(new_status.value)
        current = IssueStatus(self.status)
        if new_status == current:
            return False
        if new_status not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition(
                {"status": [f"Cannot move issue from {current.value} back to {new_status.value}"]},
                aggregate_id=self.id,
                current=current.value,
                attempted=new_status.value,
            )

        if new_status == IssueStatus.RESOLVED:
            if not (resolution_note or "").strip():
                raise MissingResolution(
                    {"resolution": ["A resolution note is required to resolve an issue"]},
                    aggregate_id=self.id,
                    current=current.value,
                    attempted=new_status.value,
                )
            with atomic_change(self):
                self.status = new_status.value
                self.resolution = resolution_note.strip()
                self.resolved_at = at
        else:
            self.status = new_status.value
        return True

    def reprioritize(self, priority: IssuePriority) -> bool:
        self._assert_not_resolved(f"priority:{priority.value}")
        if self.priority == priority.value:
            return False
        self.priority = priority.value
        return True
