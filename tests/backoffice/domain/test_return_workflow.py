"""Tests for ReturnWorkflow: filing, decisions and refund bounds."""

import pytest

from backoffice.audit.entry import AuditEventKind
from backoffice.errors import InvalidAmount, InvalidTransition, OrderNotEligible
from backoffice.order.lifecycle import OrderLifecycle
from backoffice.order.order import Order, OrderStatus, PaymentStatus
from backoffice.order.payment import PaymentVerifier
from backoffice.returns.return_request import ReturnStatus
from backoffice.returns.workflow import ReturnWorkflow, returnable_subtotal
from backoffice.shared.clock import FrozenClock


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def workflow(clock):
    return ReturnWorkflow(clock)


@pytest.fixture()
def order(clock):
    """A $50 order: one $30 item and one $20 item."""
    return Order.place(
        "ORD-50",
        {"name": "Jane Wanjiku"},
        [
            {"product_id": "SKU-A", "name": "Hair oil", "quantity": 1, "unit_price": 30.0},
            {"product_id": "SKU-B", "name": "Face cream", "quantity": 1, "unit_price": 20.0},
        ],
        clock.now(),
    )


def _approved(workflow, order, items):
    request = workflow.file(order, items, "Defective product", "staff-1").aggregate
    workflow.approve(request, "staff-1")
    return request


class TestFileReturn:
    def test_file_creates_pending_request(self, workflow, order):
        result = workflow.file(order, [{"product_id": "SKU-B", "quantity": 1}], "Defective product", "staff-1")
        request = result.aggregate

        assert request.status == ReturnStatus.PENDING.value
        assert request.order_id == "ORD-50"
        assert request.returned_quantities() == {"SKU-B": 1}
        assert request.restockable is True
        assert request.refund_amount is None
        assert [e.event_kind for e in result.entries] == [AuditEventKind.NOTE_ADDED.value]
        assert result.entries[0].note == "Return filed: Defective product"

    def test_non_restockable_return(self, workflow, order):
        request = workflow.file(
            order, [{"product_id": "SKU-B", "quantity": 1}], "Allergic reaction", "staff-1", restockable=False
        ).aggregate
        assert request.restockable is False

    def test_cancelled_order_is_not_eligible(self, workflow, order, clock):
        OrderLifecycle(clock).transition(order, OrderStatus.CANCELLED, "staff-1")
        with pytest.raises(OrderNotEligible):
            workflow.file(order, [{"product_id": "SKU-B", "quantity": 1}], "Defective product", "staff-1")

    def test_empty_items_are_not_eligible(self, workflow, order):
        with pytest.raises(OrderNotEligible):
            workflow.file(order, [], "Defective product", "staff-1")

    def test_unknown_product_is_not_eligible(self, workflow, order):
        with pytest.raises(OrderNotEligible):
            workflow.file(order, [{"product_id": "SKU-Z", "quantity": 1}], "Defective product", "staff-1")

    def test_quantity_beyond_ordered_is_not_eligible(self, workflow, order):
        with pytest.raises(OrderNotEligible):
            workflow.file(order, [{"product_id": "SKU-B", "quantity": 2}], "Defective product", "staff-1")

    def test_split_lines_are_summed_before_checking(self, workflow, order):
        with pytest.raises(OrderNotEligible):
            workflow.file(
                order,
                [{"product_id": "SKU-B", "quantity": 1}, {"product_id": "SKU-B", "quantity": 1}],
                "Defective product",
                "staff-1",
            )

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_below_one_is_invalid(self, workflow, order, quantity):
        with pytest.raises(InvalidAmount):
            workflow.file(order, [{"product_id": "SKU-B", "quantity": quantity}], "Defective product", "staff-1")


class TestDecisions:
    def test_approve(self, workflow, order):
        request = workflow.file(order, [{"product_id": "SKU-B", "quantity": 1}], "Damaged packaging", "s").aggregate
        result = workflow.approve(request, "staff-2")
        assert request.status == ReturnStatus.APPROVED.value
        assert request.processed_at is None
        assert [e.event_kind for e in result.entries] == [AuditEventKind.RETURN_APPROVED.value]

    def test_deny_stamps_processed_at_and_note(self, workflow, order, clock):
        request = workflow.file(order, [{"product_id": "SKU-B", "quantity": 1}], "Customer changed mind", "s").aggregate
        clock.advance(hours=1)
        result = workflow.deny(request, "staff-2", note="outside return window")

        assert request.status == ReturnStatus.DENIED.value
        assert request.processed_at == clock.now()
        assert request.decision_note == "outside return window"
        assert [e.event_kind for e in result.entries] == [AuditEventKind.RETURN_DENIED.value]

    @pytest.mark.parametrize("decide", ["approve", "deny"])
    def test_decisions_only_from_pending(self, workflow, order, decide):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])
        with pytest.raises(InvalidTransition):
            getattr(workflow, decide)(request, "staff-1")

    def test_denied_return_cannot_complete(self, workflow, order):
        request = workflow.file(order, [{"product_id": "SKU-B", "quantity": 1}], "Defective product", "s").aggregate
        workflow.deny(request, "staff-1")
        with pytest.raises(InvalidTransition):
            workflow.complete(request, order, 10.0, "staff-1")


class TestCompleteReturn:
    def test_refund_above_returned_subtotal_is_rejected(self, workflow, order):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])

        with pytest.raises(InvalidAmount):
            workflow.complete(request, order, 25.0, "staff-1")
        assert request.status == ReturnStatus.APPROVED.value
        assert request.refund_amount is None

    def test_refund_equal_to_subtotal_completes(self, workflow, order, clock):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])

        completion = workflow.complete(request, order, 20.0, "staff-1")

        assert request.status == ReturnStatus.COMPLETED.value
        assert request.refund_amount == 20.0
        assert request.processed_at == clock.now()
        assert [e.event_kind for e in completion.request.entries] == [AuditEventKind.REFUND_ISSUED.value]

    def test_negative_refund_is_rejected(self, workflow, order):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])
        with pytest.raises(InvalidAmount):
            workflow.complete(request, order, -1.0, "staff-1")

    def test_pending_return_cannot_complete(self, workflow, order):
        request = workflow.file(order, [{"product_id": "SKU-B", "quantity": 1}], "Defective product", "s").aggregate
        with pytest.raises(InvalidTransition):
            workflow.complete(request, order, 99.0, "staff-1")

    def test_partial_refund_leaves_payment_status(self, workflow, order, clock):
        PaymentVerifier(clock).verify(order, "card", "", "staff-1")
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])

        completion = workflow.complete(request, order, 20.0, "staff-1")

        assert order.payment_status == PaymentStatus.PAID.value
        assert completion.order.changed is False
        assert completion.order.entries[0].event_kind == AuditEventKind.NOTE_ADDED.value
        assert completion.order.entries[0].note.startswith("partial refund of 20.00")

    def test_full_refund_marks_paid_order_refunded(self, workflow, order, clock):
        PaymentVerifier(clock).verify(order, "card", "", "staff-1")
        request = _approved(
            workflow,
            order,
            [{"product_id": "SKU-A", "quantity": 1}, {"product_id": "SKU-B", "quantity": 1}],
        )

        completion = workflow.complete(request, order, 50.0, "staff-1")

        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert completion.order.changed is True
        assert completion.order.entries[0].event_kind == AuditEventKind.REFUND_ISSUED.value
        assert completion.order.entries[0].note == "full return refund"

    def test_custom_full_refund_policy(self, clock, order):
        workflow = ReturnWorkflow(clock, full_refund_policy=lambda order, amount: amount > 0)
        PaymentVerifier(clock).verify(order, "card", "", "staff-1")
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])

        workflow.complete(request, order, 5.0, "staff-1")

        assert order.payment_status == PaymentStatus.REFUNDED.value

    def test_bound_uses_order_prices_at_completion(self, workflow, order):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])
        next(item for item in order.items if item.product_id == "SKU-B").unit_price = 12.0

        assert returnable_subtotal(order, request) == 12.0
        with pytest.raises(InvalidAmount):
            workflow.complete(request, order, 20.0, "staff-1")


class TestNonFiniteRefunds:
    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_refund_is_rejected(self, workflow, order, amount):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])

        with pytest.raises(InvalidAmount):
            workflow.complete(request, order, amount, "staff-1")
        assert request.status == ReturnStatus.APPROVED.value
        assert request.refund_amount is None


class TestProductOnSeveralLines:
    @pytest.fixture()
    def split_order(self, clock):
        return Order.place(
            "ORD-S1",
            {"name": "Jane Wanjiku"},
            [
                {"product_id": "S1", "name": "Sample", "quantity": 1, "unit_price": 5.0},
                {"product_id": "S1", "name": "Sample", "quantity": 1, "unit_price": 30.0},
            ],
            clock.now(),
        )

    def test_both_units_refund_both_prices(self, workflow, split_order):
        request = _approved(workflow, split_order, [{"product_id": "S1", "quantity": 2}])

        assert returnable_subtotal(split_order, request) == 35.0
        workflow.complete(request, split_order, 35.0, "staff-1")
        assert request.refund_amount == 35.0

    def test_single_unit_is_bounded_by_priciest_line(self, workflow, split_order):
        request = _approved(workflow, split_order, [{"product_id": "S1", "quantity": 1}])

        with pytest.raises(InvalidAmount):
            workflow.complete(request, split_order, 30.01, "staff-1")
        workflow.complete(request, split_order, 30.0, "staff-1")
        assert request.status == ReturnStatus.COMPLETED.value


class TestCompletedReturn:
    def test_to_dict_carries_refund_and_items(self, workflow, order):
        request = _approved(workflow, order, [{"product_id": "SKU-B", "quantity": 1}])
        workflow.complete(request, order, 15.0, "staff-1")

        data = request.to_dict()

        assert data["status"] == ReturnStatus.COMPLETED.value
        assert data["refund_amount"] == 15.0
        assert data["processed_at"] is not None
        assert [(i["product_id"], i["quantity"]) for i in data["items"]] == [("SKU-B", 1)]
