"""Customer issue reporting, progress and reprioritisation."""

from uuid import uuid4

import structlog
from protean.exceptions import ValidationError

from backoffice.audit.entry import AuditEntry, AuditEventKind
from backoffice.issue.issue import Issue, IssuePriority, IssueStatus
from backoffice.order.order import Order
from backoffice.shared.clock import Clock
from backoffice.shared.result import TransitionResult

logger = structlog.get_logger(__name__)


def parse_issue_status(value) -> IssueStatus:
    if isinstance(value, IssueStatus):
        return value
    try:
        return IssueStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown issue status '{value}'"]}) from None


def parse_priority(value) -> IssuePriority:
    if isinstance(value, IssuePriority):
        return value
    try:
        return IssuePriority(value)
    except ValueError:
        raise ValidationError({"priority": [f"Unknown issue priority '{value}'"]}) from None


class IssueWorkflow:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock

    def report(
        self,
        order: Order,
        issue_type: str,
        description: str,
        actor: str,
        priority=IssuePriority.MEDIUM,
    ) -> TransitionResult:
        now = self.clock.now()
        issue = Issue.report(
            issue_id=str(uuid4()),
            order_id=order.id,
            issue_type=issue_type,
            priority=parse_priority(priority),
            description=description,
            reported_at=now,
        )
        logger.info("Issue reported", order_id=str(order.id), issue_id=str(issue.id), actor=actor)
        return TransitionResult(
            issue,
            [
                AuditEntry.record(
                    order.id,
                    AuditEventKind.ISSUE_UPDATED,
                    actor,
                    now,
                    note=f"issue reported: {issue_type} ({issue.priority})",
                )
            ],
        )

    def update_status(self, issue: Issue, new_status, actor: str, resolution_note=None) -> TransitionResult:
        target = parse_issue_status(new_status)
        previous = issue.status
        now = self.clock.now()

        if not issue.advance(target, resolution_note, now):
            logger.debug("Issue status unchanged", issue_id=str(issue.id), status=previous)
            return TransitionResult(issue, changed=False)

        note = f"issue {issue.id}: {previous} → {issue.status}"
        if target == IssueStatus.RESOLVED:
            note = f"{note} ({issue.resolution})"
        logger.info(
            "Issue status changed",
            issue_id=str(issue.id),
            from_status=previous,
            to_status=issue.status,
            actor=actor,
        )
        return TransitionResult(
            issue,
            [AuditEntry.record(issue.order_id, AuditEventKind.ISSUE_UPDATED, actor, now, note=note)],
        )

    def change_priority(self, issue: Issue, priority, actor: str) -> TransitionResult:
        target = parse_priority(priority)
        previous = issue.priority
        if not issue.reprioritize(target):
            return TransitionResult(issue, changed=False)

        now = self.clock.now()
        logger.info("Issue reprioritised", issue_id=str(issue.id), priority=target.value, actor=actor)
        return TransitionResult(
            issue,
            [
                AuditEntry.record(
                    issue.order_id,
                    AuditEventKind.ISSUE_UPDATED,
                    actor,
                    now,
                    note=f"issue {issue.id}: priority {previous} → {target.value}",
                )
            ],
        )
