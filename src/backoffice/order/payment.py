"""PaymentVerifier: payment reconciliation, independent of shipment status.

Staff confirm that money arrived (Pending → Paid) or record that it went
back to the customer (Paid → Refunded). No money moves here; this is the
bookkeeping record only.
"""

import structlog

from backoffice.audit.entry import AuditEntry, AuditEventKind
from backoffice.order.order import Order
from backoffice.shared.clock import Clock
from backoffice.shared.result import TransitionResult

logger = structlog.get_logger(__name__)


class PaymentVerifier:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock

    def verify(self, order: Order, method: str, note: str, actor: str) -> TransitionResult:
        now = self.clock.now()
        order.record_payment(method=method, note=note, verified_at=now)
        summary = f"Payment confirmed via {method}"
        if note:
            summary = f"{summary}: {note}"
        logger.info("Payment verified", order_id=str(order.id), method=method, actor=actor)
        return TransitionResult(
            order,
            [AuditEntry.record(order.id, AuditEventKind.PAYMENT_VERIFIED, actor, now, note=summary)],
        )

    def refund(self, order: Order, actor: str, note: str = "payment refunded") -> TransitionResult:
        now = self.clock.now()
        order.refund_payment(now)
        logger.info("Payment refunded", order_id=str(order.id), actor=actor)
        return TransitionResult(
            order,
            [AuditEntry.record(order.id, AuditEventKind.REFUND_ISSUED, actor, now, note=note)],
        )
