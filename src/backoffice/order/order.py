"""Order aggregate: the unit of fulfillment in the back office.

Orders are created when a customer checks out (outside this core) and are
then mutated only through lifecycle and payment transitions. An order is
never deleted; cancellation is a status.

State Machine:
    PROCESSING → SHIPPED → DELIVERED
    {PROCESSING, SHIPPED} → CANCELLED
    DELIVERED and CANCELLED are terminal.

Payment (independent of shipment status):
    PENDING → PAID → REFUNDED
"""

from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from backoffice.domain import backoffice
from backoffice.errors import InvalidPaymentState, InvalidTransition


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    REFUNDED = "Refunded"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_SHIPPED_STATES = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}


def allowed_transitions(status: OrderStatus) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS.get(status, set()))


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@backoffice.value_object(part_of="Order")
class Customer:
    """Contact details captured at checkout. Opaque to the back office."""

    name = String(required=True, max_length=255)
    email = String(max_length=255)
    phone = String(max_length=50)


@backoffice.value_object(part_of="Order")
class Shipment:
    """Carrier handoff details. Present only on shipped or delivered orders."""

    carrier = String(required=True, max_length=100)
    tracking_number = String(required=True, max_length=255)
    tracking_url = String(max_length=500)
    shipped_at = DateTime()


@backoffice.value_object(part_of="Order")
class PaymentRecord:
    """How and when staff verified the customer's payment."""

    method = String(required=True, max_length=50)
    verified_at = DateTime()
    note = Text()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@backoffice.entity(part_of="Order")
class OrderItem:
    """A line item: product, quantity and the unit price locked at checkout."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    def subtotal(self) -> float:
        return round(self.quantity * self.unit_price, 2)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@backoffice.aggregate
class Order:
    customer = ValueObject(Customer, required=True)
    items = HasMany(OrderItem)
    total = Float(default=0.0)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PROCESSING.value,
    )
    payment_status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    shipment = ValueObject(Shipment)
    payment_record = ValueObject(PaymentRecord)
    placed_at = DateTime()
    updated_at = DateTime()

    @property
    def version(self) -> int:
        """Saves so far: 0 until first stored."""
        return self._version + 1

    @invariant.post
    def shipment_present_only_when_shipped(self):
        shipped = OrderStatus(self.status) in _SHIPPED_STATES
        if shipped and self.shipment is None:
            raise ValidationError({"shipment": ["Shipped and delivered orders must carry a shipment"]})
        if not shipped and self.shipment is not None:
            raise ValidationError({"shipment": [f"A {self.status} order cannot carry a shipment"]})

    @invariant.post
    def cancelled_order_is_not_paid(self):
        if self.status == OrderStatus.CANCELLED.value and self.payment_status == PaymentStatus.PAID.value:
            raise ValidationError({"payment_status": ["A cancelled order cannot remain Paid"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, order_id, customer, items_data, placed_at):
        """Register a newly placed order.

        Args:
            order_id: External order number, e.g. ``ORD-1001``.
            customer: Dict with name, email, phone.
            items_data: List of dicts with product_id, name, quantity, unit_price.
            placed_at: Placement timestamp from the clock.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        order = cls(
            id=order_id,
            customer=Customer(**customer),
            status=OrderStatus.PROCESSING.value,
            payment_status=PaymentStatus.PENDING.value,
            placed_at=placed_at,
            updated_at=placed_at,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**item_data))
        order._recalculate_total()
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _recalculate_total(self):
        self.total = round(sum(item.subtotal() for item in self.items), 2)

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(
                {"status": [f"Cannot transition from {current.value} to {target_status.value}"]},
                aggregate_id=self.id,
                current=current.value,
                attempted=target_status.value,
            )

    def ordered_quantities(self) -> dict[str, int]:
        """Total ordered quantity per product id."""
        quantities: dict[str, int] = {}
        for item in self.items:
            key = str(item.product_id)
            quantities[key] = quantities.get(key, 0) + item.quantity
        return quantities

    def value_of(self, product_id, quantity: int) -> float:
        """Value of up to ``quantity`` units of ``product_id`` across its lines.

        A product can appear on several lines at different prices; units are
        taken from the priciest lines first.
        """
        lines = sorted(
            (i for i in self.items if str(i.product_id) == str(product_id)),
            key=lambda i: i.unit_price,
            reverse=True,
        )
        value, remaining = 0.0, quantity
        for line in lines:
            if remaining <= 0:
                break
            taken = min(remaining, line.quantity)
            value += taken * line.unit_price
            remaining -= taken
        return round(value, 2)

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def ship(self, shipment: Shipment, shipped_at) -> None:
        """Hand the order to a carrier."""
        self._assert_can_transition(OrderStatus.SHIPPED)
        if shipment is None:
            raise InvalidTransition(
                {"shipment": ["A shipment is required to mark an order as shipped"]},
                aggregate_id=self.id,
                current=self.status,
                attempted=OrderStatus.SHIPPED.value,
            )
        with atomic_change(self):
            self.status = OrderStatus.SHIPPED.value
            self.shipment = shipment
            self.updated_at = shipped_at

    def deliver(self, delivered_at) -> None:
        self._assert_can_transition(OrderStatus.DELIVERED)
        self.status = OrderStatus.DELIVERED.value
        self.updated_at = delivered_at

    def cancel(self, cancelled_at) -> bool:
        """Cancel the order. Returns True when a captured payment was refunded."""
        self._assert_can_transition(OrderStatus.CANCELLED)
        refunded = self.payment_status == PaymentStatus.PAID.value
        with atomic_change(self):
            self.status = OrderStatus.CANCELLED.value
            self.shipment = None
            if refunded:
                self.payment_status = PaymentStatus.REFUNDED.value
            self.updated_at = cancelled_at
        return refunded

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment(self, method, note, verified_at) -> None:
        """Mark a pending payment as received."""
        if self.payment_status != PaymentStatus.PENDING.value:
            raise InvalidPaymentState(
                {"payment_status": [f"Cannot verify payment when payment is {self.payment_status}"]},
                aggregate_id=self.id,
                current=self.payment_status,
                attempted=PaymentStatus.PAID.value,
            )
        if self.status == OrderStatus.CANCELLED.value:
            raise InvalidPaymentState(
                {"status": ["Cannot verify payment on a cancelled order"]},
                aggregate_id=self.id,
                current=self.status,
                attempted=PaymentStatus.PAID.value,
            )
        with atomic_change(self):
            self.payment_status = PaymentStatus.PAID.value
            self.payment_record = PaymentRecord(method=method, verified_at=verified_at, note=note or "")
            self.updated_at = verified_at

    def refund_payment(self, refunded_at) -> None:
        if self.payment_status != PaymentStatus.PAID.value:
            raise InvalidPaymentState(
                {"payment_status": [f"Cannot refund when payment is {self.payment_status}"]},
                aggregate_id=self.id,
                current=self.payment_status,
                attempted=PaymentStatus.REFUNDED.value,
            )
        self.payment_status = PaymentStatus.REFUNDED.value
        self.updated_at = refunded_at
