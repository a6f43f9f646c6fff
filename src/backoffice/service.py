"""FulfillmentService: the single entry point to the backoffice core.

Every command follows the same cycle: load the aggregate, hand it to the
workflow, save it with the version it was loaded at, then record the audit
entries and publish them. Audit entries are written only after the save
commits, so the history never describes a change that did not happen.

The service holds no business rules of its own. A ``ConcurrentModification``
from the save is retried ``conflict_retries`` times against a fresh load
(default 0: the caller sees the conflict).
"""

import threading
from collections.abc import Callable
from datetime import datetime

import structlog

from backoffice.audit.entry import AuditEntry, AuditEventKind
from backoffice.audit.log import AuditLog, AuditSink
from backoffice.batch.processor import BatchOperation, BatchProcessor, BatchResult
from backoffice.config import Settings
from backoffice.errors import ConcurrentModification, InvalidTransition
from backoffice.issue.issue import Issue, IssuePriority
from backoffice.issue.workflow import IssueWorkflow
from backoffice.order.lifecycle import OrderLifecycle
from backoffice.order.order import Order, OrderStatus, PaymentStatus
from backoffice.order.payment import PaymentVerifier
from backoffice.persistence import build_repositories
from backoffice.persistence.port import IssueRepository, OrderRepository, ReturnRepository
from backoffice.persistence.store import DEFAULT_TIMEOUT, Store
from backoffice.returns.return_request import ReturnRequest
from backoffice.returns.workflow import FullRefundPolicy, ReturnWorkflow, covers_full_order
from backoffice.shared.clock import Clock, SystemClock, as_utc, to_iso
from backoffice.shared.publisher import EventPublisher, LoggingPublisher, publish_safely
from backoffice.shared.result import TransitionResult

logger = structlog.get_logger(__name__)

_BATCH_TARGETS = {
    BatchOperation.SHIP: OrderStatus.SHIPPED,
    BatchOperation.DELIVER: OrderStatus.DELIVERED,
    BatchOperation.CANCEL: OrderStatus.CANCELLED,
}


class FulfillmentService:
    def __init__(
        self,
        orders: OrderRepository,
        returns: ReturnRepository,
        issues: IssueRepository,
        audit_sink: AuditSink,
        clock: Clock | None = None,
        publisher: EventPublisher | None = None,
        full_refund_policy: FullRefundPolicy = covers_full_order,
        batch_workers: int = 4,
        conflict_retries: int = 0,
        timeout: float = DEFAULT_TIMEOUT,
        store: Store | None = None,
    ) -> None:
        self.orders = orders
        self.returns = returns
        self.issues = issues
        self.audit = AuditLog(audit_sink)
        self.clock = clock or SystemClock()
        self.publisher = publisher or LoggingPublisher()
        self.conflict_retries = conflict_retries
        self.timeout = timeout
        self.store = store or Store()

        self.lifecycle = OrderLifecycle(self.clock)
        self.payments = PaymentVerifier(self.clock)
        self.return_workflow = ReturnWorkflow(self.clock, full_refund_policy)
        self.issue_workflow = IssueWorkflow(self.clock)
        self.batch = BatchProcessor(max_workers=batch_workers)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Clock | None = None,
        publisher: EventPublisher | None = None,
    ) -> "FulfillmentService":
        repositories = build_repositories(settings)
        return cls(
            orders=repositories.orders,
            returns=repositories.returns,
            issues=repositories.issues,
            audit_sink=repositories.audit_sink,
            clock=clock,
            publisher=publisher,
            batch_workers=settings.batch_workers,
            conflict_retries=settings.conflict_retries,
            timeout=settings.repository_timeout,
            store=repositories.store,
        )

    # -------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------
    def _record(self, entries: list[AuditEntry]) -> None:
        if not entries:
            return
        for entry in self.audit.append(entries):
            publish_safely(
                self.publisher,
                entry.event_kind,
                str(entry.order_id),
                {
                    "entry_id": str(entry.id),
                    "actor": entry.actor,
                    "note": entry.note,
                    "timestamp": to_iso(entry.timestamp),
                },
            )

    def _mutate(self, repository, aggregate_id: str, step: Callable[[object], TransitionResult]):
        """Load, apply ``step``, save at the loaded version, then record history."""
        attempts = self.conflict_retries + 1
        for attempt in range(1, attempts + 1):
            aggregate = repository.load(aggregate_id, self.timeout)
            loaded_version = aggregate.version
            result = step(aggregate)
            if not result.changed:
                self._record(result.entries)
                return result.aggregate
            try:
                repository.save(result.aggregate, loaded_version, self.timeout)
            except ConcurrentModification:
                if attempt == attempts:
                    logger.warning("Write conflict", aggregate_id=str(aggregate_id), attempts=attempts)
                    raise
                logger.info("Write conflict, retrying", aggregate_id=str(aggregate_id), attempt=attempt)
                continue
            self._record(result.entries)
            return result.aggregate

    def _create(self, repository, result: TransitionResult):
        repository.save(result.aggregate, 0, self.timeout)
        self._record(result.entries)
        return result.aggregate

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def place_order(self, order_id: str, customer: dict, items: list[dict], actor: str) -> Order:
        """Register an order created by checkout so the back office can work on it."""
        now = self.clock.now()
        order = Order.place(order_id, customer, items, now)
        logger.info("Order placed", order_id=str(order.id), total=order.total, actor=actor)
        return self._create(
            self.orders,
            TransitionResult(
                order,
                [AuditEntry.record(order.id, AuditEventKind.NOTE_ADDED, actor, now, note="order placed")],
            ),
        )

    def get_order(self, order_id: str) -> Order:
        return self.orders.load(order_id, self.timeout)

    def find_orders(
        self,
        status=None,
        payment_status=None,
        text: str | None = None,
        placed_from: datetime | None = None,
        placed_to: datetime | None = None,
    ) -> list[Order]:
        if isinstance(status, OrderStatus):
            status = status.value
        if isinstance(payment_status, PaymentStatus):
            payment_status = payment_status.value
        return self.orders.search(
            status=status,
            payment_status=payment_status,
            text=text,
            placed_from=as_utc(placed_from),
            placed_to=as_utc(placed_to),
            timeout=self.timeout,
        )

    def transition_order(self, order_id: str, target_status, actor: str, shipment=None) -> Order:
        return self._mutate(
            self.orders,
            order_id,
            lambda order: self.lifecycle.transition(order, target_status, actor, shipment=shipment),
        )

    def verify_payment(self, order_id: str, method: str, actor: str, note: str = "") -> Order:
        return self._mutate(
            self.orders,
            order_id,
            lambda order: self.payments.verify(order, method, note, actor),
        )

    def refund_payment(self, order_id: str, actor: str, note: str = "payment refunded") -> Order:
        return self._mutate(
            self.orders,
            order_id,
            lambda order: self.payments.refund(order, actor, note=note),
        )

    def add_note(self, order_id: str, note: str, actor: str) -> AuditEntry:
        order = self.orders.load(order_id, self.timeout)
        entry = AuditEntry.record(order.id, AuditEventKind.NOTE_ADDED, actor, self.clock.now(), note=note)
        self._record([entry])
        return entry

    def order_history(self, order_id: str) -> list[AuditEntry]:
        # Unknown orders raise NotFound rather than returning an empty history
        self.orders.load(order_id, self.timeout)
        return self.audit.history(order_id)

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def file_return(
        self,
        order_id: str,
        items: list[dict],
        reason: str,
        actor: str,
        restockable: bool = True,
    ) -> ReturnRequest:
        order = self.orders.load(order_id, self.timeout)
        return self._create(self.returns, self.return_workflow.file(order, items, reason, actor, restockable))

    def approve_return(self, return_id: str, actor: str) -> ReturnRequest:
        return self._mutate(self.returns, return_id, lambda request: self.return_workflow.approve(request, actor))

    def deny_return(self, return_id: str, actor: str, note: str = "") -> ReturnRequest:
        return self._mutate(
            self.returns,
            return_id,
            lambda request: self.return_workflow.deny(request, actor, note),
        )

    def complete_return(self, return_id: str, refund_amount: float, actor: str) -> ReturnRequest:
        """Complete an approved return and refund up to the returned items' value.

        The completed return and, when the refund covers the whole order, the
        order's Refunded payment status commit in one unit of work. A conflict
        on either leaves both untouched; it is retried ``conflict_retries``
        times against a fresh load.
        """
        attempts = self.conflict_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                with self.store.transaction(self.timeout):
                    request = self.returns.load(return_id, self.timeout)
                    request_version = request.version
                    order = self.orders.load(request.order_id, self.timeout)
                    order_version = order.version

                    completion = self.return_workflow.complete(request, order, refund_amount, actor)
                    self.returns.save(completion.request.aggregate, request_version, self.timeout)
                    if completion.order.changed:
                        self.orders.save(completion.order.aggregate, order_version, self.timeout)
            except ConcurrentModification:
                if attempt == attempts:
                    logger.warning("Write conflict", aggregate_id=str(return_id), attempts=attempts)
                    raise
                logger.info("Write conflict, retrying", aggregate_id=str(return_id), attempt=attempt)
                continue
            self._record(completion.request.entries + completion.order.entries)
            return completion.request.aggregate

    def returns_for_order(self, order_id: str) -> list[ReturnRequest]:
        return self.returns.for_order(order_id, self.timeout)

    def get_return(self, return_id: str) -> ReturnRequest:
        return self.returns.load(return_id, self.timeout)

    # -------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------
    def report_issue(
        self,
        order_id: str,
        issue_type: str,
        description: str,
        actor: str,
        priority=IssuePriority.MEDIUM,
    ) -> Issue:
        order = self.orders.load(order_id, self.timeout)
        return self._create(
            self.issues,
            self.issue_workflow.report(order, issue_type, description, actor, priority=priority),
        )

    def update_issue(self, issue_id: str, new_status, actor: str, resolution_note: str | None = None) -> Issue:
        return self._mutate(
            self.issues,
            issue_id,
            lambda issue: self.issue_workflow.update_status(issue, new_status, actor, resolution_note),
        )

    def change_issue_priority(self, issue_id: str, priority, actor: str) -> Issue:
        return self._mutate(
            self.issues,
            issue_id,
            lambda issue: self.issue_workflow.change_priority(issue, priority, actor),
        )

    def issues_for_order(self, order_id: str) -> list[Issue]:
        return self.issues.for_order(order_id, self.timeout)

    def get_issue(self, issue_id: str) -> Issue:
        return self.issues.load(issue_id, self.timeout)

    # -------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------
    def apply_batch(
        self,
        order_ids: list[str],
        operation,
        actor: str,
        params: dict | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> BatchResult:
        """Apply one order operation to every id, independently.

        ``params`` carries operation inputs: ``shipments`` (per order id) or
        ``shipment`` (shared) for ``ship``; ``method`` and ``note`` for
        ``verify_payment``.
        """
        operation = self._parse_operation(operation)
        params = params or {}
        logger.info("Batch started", operation=operation.value, size=len(order_ids), actor=actor)
        return self.batch.run(
            order_ids,
            lambda order_id: self._apply_one(order_id, operation, actor, params),
            cancel_event=cancel_event,
            timeout=timeout,
        )

    @staticmethod
    def _parse_operation(operation) -> BatchOperation:
        if isinstance(operation, BatchOperation):
            return operation
        try:
            return BatchOperation(operation)
        except ValueError:
            raise InvalidTransition(
                {"operation": [f"Unknown batch operation '{operation}'"]},
                attempted=str(operation),
            ) from None

    def _apply_one(self, order_id: str, operation: BatchOperation, actor: str, params: dict):
        if operation == BatchOperation.VERIFY_PAYMENT:
            return self.verify_payment(order_id, params.get("method", "manual"), actor, note=params.get("note", ""))
        if operation == BatchOperation.REFUND_PAYMENT:
            return self.refund_payment(order_id, actor)

        shipment = None
        if operation == BatchOperation.SHIP:
            shipment = params.get("shipments", {}).get(order_id) or params.get("shipment")
        return self.transition_order(order_id, _BATCH_TARGETS[operation], actor, shipment=shipment)
