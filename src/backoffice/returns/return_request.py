"""ReturnRequest aggregate: a customer's request to send items back.

A return references its order by id only. Items are a subset of the order's
items; prices are never copied onto the return so the refundable subtotal is
always computed from the order as it stands at completion time.

State Machine:
    PENDING → APPROVED → COMPLETED
    PENDING → DENIED
    DENIED and COMPLETED are terminal.
"""

from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from backoffice.domain import backoffice
from backoffice.errors import InvalidTransition


class ReturnStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"
    COMPLETED = "Completed"


_VALID_TRANSITIONS = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.DENIED},
    ReturnStatus.APPROVED: {ReturnStatus.COMPLETED},
    ReturnStatus.DENIED: set(),  # Terminal
    ReturnStatus.COMPLETED: set(),  # Terminal
}


@backoffice.entity(part_of="ReturnRequest")
class ReturnItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@backoffice.aggregate
class ReturnRequest:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    items = HasMany(ReturnItem)
    status = String(
        choices=ReturnStatus,
        default=ReturnStatus.PENDING.value,
    )
    restockable = Boolean(default=True)
    decision_note = Text()
    requested_at = DateTime()
    processed_at = DateTime()
    refund_amount = Float()

    @property
    def version(self) -> int:
        return self._version + 1

    @invariant.post
    def refund_amount_only_on_completion(self):
        if self.refund_amount is not None and self.status != ReturnStatus.COMPLETED.value:
            raise ValidationError({"refund_amount": ["Refund amount is set only when a return is completed"]})

    @invariant.post
    def processed_at_only_when_decided(self):
        decided = self.status in (ReturnStatus.COMPLETED.value, ReturnStatus.DENIED.value)
        if self.processed_at is not None and not decided:
            raise ValidationError({"processed_at": ["Only completed or denied returns carry a processed time"]})

    @classmethod
    def file(cls, return_id, order_id, items_data, reason, requested_at, restockable=True):
        request = cls(
            id=return_id,
            order_id=str(order_id),
            reason=reason,
            status=ReturnStatus.PENDING.value,
            restockable=restockable,
            requested_at=requested_at,
        )
        for item_data in items_data:
            request.add_items(ReturnItem(product_id=str(item_data["product_id"]), quantity=item_data["quantity"]))
        return request

    def _assert_can_transition(self, target_status: ReturnStatus) -> None:
        current = ReturnStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(
                {"status": [f"Cannot transition return from {current.value} to {target_status.value}"]},
                aggregate_id=self.id,
                current=current.value,
                attempted=target_status.value,
            )

    def returned_quantities(self) -> dict[str, int]:
        quantities: dict[str, int] = {}
        for item in self.items:
            key = str(item.product_id)
            quantities[key] = quantities.get(key, 0) + item.quantity
        return quantities

    def approve(self) -> None:
        self._assert_can_transition(ReturnStatus.APPROVED)
        self.status = ReturnStatus.APPROVED.value

    def deny(self, processed_at, note="") -> None:
        self._assert_can_transition(ReturnStatus.DENIED)
        with atomic_change(self):
            self.status = ReturnStatus.DENIED.value
            self.processed_at = processed_at
            self.decision_note = note or ""

    def complete(self, refund_amount: float, processed_at) -> None:
        self._assert_can_transition(ReturnStatus.COMPLETED)
        with atomic_change(self):
            self.status = ReturnStatus.COMPLETED.value
            self.refund_amount = refund_amount
            self.processed_at = processed_at
