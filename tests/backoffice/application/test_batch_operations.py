"""Application tests for batch operations across many orders."""

import threading

import pytest

from backoffice.batch.processor import BatchOperation, BatchProcessor
from backoffice.errors import InvalidPaymentState, InvalidTransition, NotFound, OperationCancelled
from backoffice.order.order import OrderStatus, PaymentStatus

SHIPMENTS = {
    "A": {"carrier": "DHL", "tracking": "TA"},
    "B": {"carrier": "DHL", "tracking": "TB"},
    "C": {"carrier": "DHL", "tracking": "TC"},
}


@pytest.fixture()
def abc(service, place):
    for order_id in ("A", "B", "C"):
        place(order_id)
    service.transition_order("B", "Shipped", "staff-1", shipment=SHIPMENTS["B"])
    service.transition_order("B", "Delivered", "staff-1")


class TestShipBatch:
    def test_delivered_order_fails_others_ship(self, service, abc):
        result = service.apply_batch(["A", "B", "C"], "ship", "staff-1", params={"shipments": SHIPMENTS})

        assert result.succeeded == ["A", "C"]
        assert result.failed_ids() == ["B"]
        assert isinstance(result.failed[0][1], InvalidTransition)
        assert result.cancelled is False
        assert service.get_order("A").status == OrderStatus.SHIPPED.value
        assert service.get_order("C").shipment.tracking_number == "TC"
        assert service.get_order("B").status == OrderStatus.DELIVERED.value

    def test_shared_shipment_applies_to_every_order(self, service, place):
        place("A")
        place("C")
        result = service.apply_batch(
            ["A", "C"], BatchOperation.SHIP, "staff-1", params={"shipment": {"carrier": "Sendy", "tracking": "S1"}}
        )
        assert result.succeeded == ["A", "C"]

    def test_missing_shipment_fails_that_order(self, service, place):
        place("A")
        result = service.apply_batch(["A"], "ship", "staff-1")
        assert result.failed_ids() == ["A"]
        assert isinstance(result.failed[0][1], InvalidTransition)


class TestBatchAccounting:
    def test_n_minus_k_succeed(self, service, place):
        for order_id in ("O1", "O2", "O3", "O4", "O5"):
            place(order_id)
        for order_id in ("O2", "O4"):
            service.transition_order(order_id, "Cancelled", "staff-1")

        result = service.apply_batch(["O1", "O2", "O3", "O4", "O5"], "verify_payment", "staff-1")

        assert len(result.succeeded) == 3
        assert len(result.failed) == 2
        assert set(result.succeeded) | set(result.failed_ids()) == {"O1", "O2", "O3", "O4", "O5"}
        assert all(isinstance(error, InvalidPaymentState) for _, error in result.failed)

    def test_duplicates_and_unknown_ids(self, service, place):
        place("O1")
        place("O2")

        result = service.apply_batch(["O2", "O1", "O2", "missing"], "cancel", "staff-1")

        assert result.succeeded == ["O2", "O1"]
        assert result.failed_ids() == ["missing"]
        assert isinstance(result.failed[0][1], NotFound)
        assert result.total == 3

    def test_empty_batch(self, service):
        result = service.apply_batch([], "deliver", "staff-1")
        assert result.succeeded == []
        assert result.failed == []

    def test_refund_batch(self, service, place):
        place("O1")
        place("O2")
        service.verify_payment("O1", "card", "staff-1")

        result = service.apply_batch(["O1", "O2"], "refund_payment", "staff-1")

        assert result.succeeded == ["O1"]
        assert service.get_order("O1").payment_status == PaymentStatus.REFUNDED.value

    def test_unknown_operation_is_rejected(self, service):
        with pytest.raises(InvalidTransition):
            service.apply_batch(["O1"], "teleport", "staff-1")

    def test_result_serializes_failures(self, service, place):
        place("O1")
        result = service.apply_batch(["O1", "nope"], "cancel", "staff-1")
        payload = result.to_dict()
        assert payload["succeeded"] == ["O1"]
        assert payload["failed"][0]["order_id"] == "nope"
        assert payload["failed"][0]["kind"] == "NotFound"
        assert payload["failed"][0]["retryable"] is False


class TestBatchCancellation:
    def test_cancel_event_set_before_start_cancels_everything(self, service, place):
        place("O1")
        place("O2")
        cancel = threading.Event()
        cancel.set()

        result = service.apply_batch(["O1", "O2"], "cancel", "staff-1", cancel_event=cancel)

        assert result.cancelled is True
        assert result.succeeded == []
        assert all(isinstance(error, OperationCancelled) for _, error in result.failed)
        assert all(error.retryable for _, error in result.failed)
        assert service.get_order("O1").status == OrderStatus.PROCESSING.value

    def test_cancelling_midway_keeps_completed_items(self):
        processor = BatchProcessor(max_workers=1)
        cancel = threading.Event()
        applied = []

        def apply_one(order_id):
            applied.append(order_id)
            if order_id == "O2":
                cancel.set()

        result = processor.run(["O1", "O2", "O3", "O4"], apply_one, cancel_event=cancel)

        assert result.succeeded == ["O1", "O2"]
        assert result.failed_ids() == ["O3", "O4"]
        assert applied == ["O1", "O2"]
        assert result.cancelled is True

    def test_elapsed_timeout_stops_new_items(self):
        processor = BatchProcessor(max_workers=1)
        gate = threading.Event()

        def apply_one(order_id):
            # First item outlives the deadline
            gate.wait(0.2)

        result = processor.run(["O1", "O2"], apply_one, timeout=0.05)

        assert result.succeeded == ["O1"]
        assert result.failed_ids() == ["O2"]
        assert isinstance(result.failed[0][1], OperationCancelled)

    def test_parallel_workers_account_for_every_item(self):
        processor = BatchProcessor(max_workers=8)
        ids = [f"O{i}" for i in range(50)]

        def apply_one(order_id):
            if int(order_id[1:]) % 5 == 0:
                raise InvalidTransition("not allowed", aggregate_id=order_id)

        result = processor.run(ids, apply_one)

        assert len(result.succeeded) == 40
        assert len(result.failed) == 10
        assert sorted(result.succeeded + result.failed_ids()) == sorted(ids)
        # Input order is kept regardless of completion order
        assert [i for i in ids if i in set(result.succeeded)] == result.succeeded
