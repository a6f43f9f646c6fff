"""Order status transitions and the side effects they trigger.

The transition table lives with the Order aggregate; this component picks
the aggregate method for the requested target, treats a transition to the
current status as a no-op, and drafts the audit entries the change
produces. It never touches a repository.
"""

import structlog

from backoffice.audit.entry import AuditEntry, AuditEventKind
from backoffice.errors import InvalidTransition
from backoffice.order.carriers import tracking_url_for
from backoffice.order.order import Order, OrderStatus, Shipment
from backoffice.shared.clock import Clock
from backoffice.shared.result import TransitionResult

logger = structlog.get_logger(__name__)


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidTransition(
            {"status": [f"Unknown order status '{value}'"]},
            attempted=str(value),
        ) from None


def build_shipment(details, shipped_at) -> Shipment | None:
    """Build a Shipment from a dict or pass an existing one through.

    Accepts ``tracking`` as shorthand for ``tracking_number``. A missing
    tracking URL is derived from the carrier when the carrier is known.
    """
    if details is None:
        return None
    if isinstance(details, Shipment):
        return details
    tracking_number = details.get("tracking_number") or details.get("tracking")
    carrier = details.get("carrier")
    tracking_url = details.get("tracking_url") or tracking_url_for(carrier, tracking_number)
    return Shipment(
        carrier=carrier,
        tracking_number=tracking_number,
        tracking_url=tracking_url,
        shipped_at=details.get("shipped_at") or shipped_at,
    )


class OrderLifecycle:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock

    def transition(self, order: Order, target_status, actor: str, shipment=None) -> TransitionResult:
        target = parse_status(target_status)
        current = OrderStatus(order.status)

        if target == current:
            logger.debug("Transition is a no-op", order_id=str(order.id), status=current.value)
            return TransitionResult(order, changed=False)

        order._assert_can_transition(target)
        now = self.clock.now()
        entries = []

        if target == OrderStatus.SHIPPED:
            shipment_vo = build_shipment(shipment, now)
            order.ship(shipment_vo, now)
            entries.append(self._status_changed(order, current, target, actor, now))
            entries.append(
                AuditEntry.record(
                    order.id,
                    AuditEventKind.SHIPMENT_CREATED,
                    actor,
                    now,
                    note=f"Shipped via {shipment_vo.carrier}, tracking: {shipment_vo.tracking_number}",
                )
            )
        elif target == OrderStatus.DELIVERED:
            order.deliver(now)
            entries.append(self._status_changed(order, current, target, actor, now))
        elif target == OrderStatus.CANCELLED:
            refunded = order.cancel(now)
            entries.append(self._status_changed(order, current, target, actor, now))
            if refunded:
                entries.append(
                    AuditEntry.record(order.id, AuditEventKind.REFUND_ISSUED, actor, now, note="cancellation refund")
                )

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            from_status=current.value,
            to_status=target.value,
            actor=actor,
        )
        return TransitionResult(order, entries)

    @staticmethod
    def _status_changed(order, current, target, actor, at) -> AuditEntry:
        return AuditEntry.record(
            order.id,
            AuditEventKind.STATUS_CHANGED,
            actor,
            at,
            note=f"{current.value} → {target.value}",
        )
