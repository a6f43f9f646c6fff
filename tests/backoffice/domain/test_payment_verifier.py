"""Tests for PaymentVerifier: Pending → Paid → Refunded bookkeeping."""

import pytest

from backoffice.audit.entry import AuditEventKind
from backoffice.errors import InvalidPaymentState
from backoffice.order.lifecycle import OrderLifecycle
from backoffice.order.order import Order, OrderStatus, PaymentStatus
from backoffice.order.payment import PaymentVerifier
from backoffice.shared.clock import FrozenClock


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def verifier(clock):
    return PaymentVerifier(clock)


@pytest.fixture()
def order(clock):
    return Order.place(
        "ORD-9",
        {"name": "Jane Wanjiku"},
        [{"product_id": "SKU-1", "name": "Shea butter", "quantity": 1, "unit_price": 50.0}],
        clock.now(),
    )


class TestVerify:
    def test_verify_marks_paid_without_touching_status(self, verifier, order, clock):
        result = verifier.verify(order, "card", "", "staff-1")

        assert order.payment_status == PaymentStatus.PAID.value
        assert order.status == OrderStatus.PROCESSING.value
        assert order.payment_record.method == "card"
        assert order.payment_record.verified_at == clock.now()
        assert [e.event_kind for e in result.entries] == [AuditEventKind.PAYMENT_VERIFIED.value]
        assert result.entries[0].note == "Payment confirmed via card"

    def test_verify_keeps_reconciliation_note(self, verifier, order):
        result = verifier.verify(order, "mpesa", "ref QWE123", "staff-1")
        assert order.payment_record.note == "ref QWE123"
        assert result.entries[0].note == "Payment confirmed via mpesa: ref QWE123"

    def test_verify_twice_fails(self, verifier, order):
        verifier.verify(order, "card", "", "staff-1")
        with pytest.raises(InvalidPaymentState):
            verifier.verify(order, "card", "", "staff-1")

    def test_verify_after_refund_fails(self, verifier, order):
        verifier.verify(order, "card", "", "staff-1")
        verifier.refund(order, "staff-1")
        with pytest.raises(InvalidPaymentState):
            verifier.verify(order, "card", "", "staff-1")

    def test_verify_on_cancelled_order_fails(self, verifier, order, clock):
        OrderLifecycle(clock).transition(order, OrderStatus.CANCELLED, "staff-1")
        with pytest.raises(InvalidPaymentState) as exc:
            verifier.verify(order, "card", "", "staff-1")
        assert order.payment_status == PaymentStatus.PENDING.value
        assert exc.value.current == OrderStatus.CANCELLED.value


class TestRefund:
    def test_refund_from_paid(self, verifier, order):
        verifier.verify(order, "card", "", "staff-1")
        result = verifier.refund(order, "staff-2")

        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert [e.event_kind for e in result.entries] == [AuditEventKind.REFUND_ISSUED.value]
        assert result.entries[0].actor == "staff-2"

    def test_refund_from_pending_fails(self, verifier, order):
        with pytest.raises(InvalidPaymentState) as exc:
            verifier.refund(order, "staff-1")
        assert exc.value.current == PaymentStatus.PENDING.value
        assert exc.value.attempted == PaymentStatus.REFUNDED.value

    def test_refund_twice_fails(self, verifier, order):
        verifier.verify(order, "card", "", "staff-1")
        verifier.refund(order, "staff-1")
        with pytest.raises(InvalidPaymentState):
            verifier.refund(order, "staff-1")
