"""ReturnWorkflow: filing, deciding and completing returns.

Refund bounds are computed from the order passed in at completion time,
never from values cached on the return, so a return cannot refund more than
the returned items are worth on the order as it currently stands.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

import structlog

from backoffice.audit.entry import AuditEntry, AuditEventKind
from backoffice.errors import InvalidAmount, OrderNotEligible
from backoffice.order.order import Order, OrderStatus, PaymentStatus
from backoffice.order.payment import PaymentVerifier
from backoffice.returns.return_request import ReturnRequest, ReturnStatus
from backoffice.shared.clock import Clock
from backoffice.shared.result import TransitionResult

logger = structlog.get_logger(__name__)

FullRefundPolicy = Callable[[Order, float], bool]


def covers_full_order(order: Order, refund_amount: float) -> bool:
    """Default policy: a refund of at least the order total is a full refund."""
    return round(refund_amount, 2) >= round(order.total or 0.0, 2)


def returnable_subtotal(order: Order, request: ReturnRequest) -> float:
    """Value of the returned items at the order's current prices and quantities."""
    subtotal = 0.0
    for product_id, quantity in request.returned_quantities().items():
        subtotal += order.value_of(product_id, quantity)
    return round(subtotal, 2)


@dataclass
class CompletionResult:
    request: TransitionResult
    order: TransitionResult


class ReturnWorkflow:
    def __init__(self, clock: Clock, full_refund_policy: FullRefundPolicy = covers_full_order) -> None:
        self.clock = clock
        self.full_refund_policy = full_refund_policy
        self.payments = PaymentVerifier(clock)

    def file(self, order: Order, items: list[dict], reason: str, actor: str, restockable: bool = True):
        if OrderStatus(order.status) == OrderStatus.CANCELLED:
            raise OrderNotEligible(
                {"order_id": [f"Order {order.id} is cancelled and cannot be returned"]},
                aggregate_id=order.id,
                current=order.status,
                attempted="FileReturn",
            )
        if not items:
            raise OrderNotEligible(
                {"items": ["A return needs at least one item"]},
                aggregate_id=order.id,
                attempted="FileReturn",
            )

        requested: dict[str, int] = {}
        for item in items:
            quantity = item.get("quantity")
            if quantity is None or quantity < 1:
                raise InvalidAmount(
                    {"quantity": [f"Return quantity for {item.get('product_id')} must be at least 1"]},
                    aggregate_id=order.id,
                    attempted="FileReturn",
                )
            key = str(item.get("product_id"))
            requested[key] = requested.get(key, 0) + quantity

        ordered = order.ordered_quantities()
        for product_id, quantity in requested.items():
            if product_id not in ordered:
                raise OrderNotEligible(
                    {"items": [f"Product {product_id} is not part of order {order.id}"]},
                    aggregate_id=order.id,
                    attempted="FileReturn",
                )
            if quantity > ordered[product_id]:
                raise OrderNotEligible(
                    {"items": [f"Cannot return {quantity} of {product_id}; only {ordered[product_id]} ordered"]},
                    aggregate_id=order.id,
                    attempted="FileReturn",
                )

        now = self.clock.now()
        request = ReturnRequest.file(
            return_id=str(uuid4()),
            order_id=order.id,
            items_data=[{"product_id": pid, "quantity": qty} for pid, qty in requested.items()],
            reason=reason,
            requested_at=now,
            restockable=restockable,
        )
        logger.info("Return filed", order_id=str(order.id), return_id=str(request.id), actor=actor)
        return TransitionResult(
            request,
            [AuditEntry.record(order.id, AuditEventKind.NOTE_ADDED, actor, now, note=f"Return filed: {reason}")],
        )

    def approve(self, request: ReturnRequest, actor: str) -> TransitionResult:
        request.approve()
        now = self.clock.now()
        logger.info("Return approved", return_id=str(request.id), actor=actor)
        return TransitionResult(
            request,
            [
                AuditEntry.record(
                    request.order_id, AuditEventKind.RETURN_APPROVED, actor, now, note=f"Return {request.id} approved"
                )
            ],
        )

    def deny(self, request: ReturnRequest, actor: str, note: str = "") -> TransitionResult:
        now = self.clock.now()
        request.deny(now, note)
        summary = f"Return {request.id} denied"
        if note:
            summary = f"{summary}: {note}"
        logger.info("Return denied", return_id=str(request.id), actor=actor)
        return TransitionResult(
            request,
            [AuditEntry.record(request.order_id, AuditEventKind.RETURN_DENIED, actor, now, note=summary)],
        )

    def complete(self, request: ReturnRequest, order: Order, refund_amount, actor: str) -> CompletionResult:
        # Surface state errors before amount errors
        request._assert_can_transition(ReturnStatus.COMPLETED)

        subtotal = returnable_subtotal(order, request)
        if refund_amount is None or not math.isfinite(refund_amount) or refund_amount < 0:
            raise InvalidAmount(
                {"refund_amount": ["Refund amount must be a finite amount of zero or more"]},
                aggregate_id=request.id,
                current=request.status,
                attempted="Completed",
            )
        if round(refund_amount, 2) > subtotal:
            raise InvalidAmount(
                {"refund_amount": [f"Refund {refund_amount:.2f} exceeds returned items subtotal {subtotal:.2f}"]},
                aggregate_id=request.id,
                current=request.status,
                attempted="Completed",
            )

        now = self.clock.now()
        request.complete(round(refund_amount, 2), now)
        request_entries = [
            AuditEntry.record(
                request.order_id,
                AuditEventKind.REFUND_ISSUED,
                actor,
                now,
                note=f"Return {request.id} refunded {refund_amount:.2f}",
            )
        ]

        full_refund = self.full_refund_policy(order, refund_amount)
        if full_refund and order.payment_status == PaymentStatus.PAID.value:
            order_result = self.payments.refund(order, actor, note="full return refund")
        else:
            kind = "full" if full_refund else "partial"
            order_result = TransitionResult(
                order,
                [
                    AuditEntry.record(
                        order.id,
                        AuditEventKind.NOTE_ADDED,
                        actor,
                        now,
                        note=f"{kind} refund of {refund_amount:.2f}; payment status stays {order.payment_status}",
                    )
                ],
                changed=False,
            )

        logger.info(
            "Return completed",
            return_id=str(request.id),
            order_id=str(order.id),
            refund_amount=refund_amount,
            actor=actor,
        )
        return CompletionResult(TransitionResult(request, request_entries), order_result)
