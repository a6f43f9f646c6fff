"""BatchProcessor: apply one order operation across many orders.

Best-effort, not a transaction: every order is loaded, changed and saved on
its own, and one failure never stops or undoes the others. The result names
every distinct input id exactly once, in input order.

Work fans out over a thread pool. The only state the workers share is the
result collector. A cancel event or timeout stops new items from starting;
items that never started are reported as failed with ``OperationCancelled``.
"""

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

import structlog
from protean.exceptions import ValidationError

from backoffice.domain import backoffice
from backoffice.errors import FulfillmentError, OperationCancelled

logger = structlog.get_logger(__name__)


class BatchOperation(Enum):
    SHIP = "ship"
    DELIVER = "deliver"
    CANCEL = "cancel"
    VERIFY_PAYMENT = "verify_payment"
    REFUND_PAYMENT = "refund_payment"


@dataclass
class BatchResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def failed_ids(self) -> list[str]:
        return [order_id for order_id, _ in self.failed]

    def to_dict(self) -> dict:
        return {
            "succeeded": list(self.succeeded),
            "failed": [
                {
                    "order_id": order_id,
                    "kind": type(error).__name__,
                    "retryable": getattr(error, "retryable", False),
                    "message": str(error),
                }
                for order_id, error in self.failed
            ],
            "cancelled": self.cancelled,
        }


class _Collector:
    def __init__(self) -> None:
        self._outcomes: dict[str, Exception | None] = {}
        self._lock = threading.Lock()

    def succeed(self, order_id: str) -> None:
        with self._lock:
            self._outcomes[order_id] = None

    def fail(self, order_id: str, error: Exception) -> None:
        with self._lock:
            self._outcomes[order_id] = error

    def result(self, order_ids: list[str], cancelled: bool) -> BatchResult:
        with self._lock:
            outcomes = dict(self._outcomes)
        result = BatchResult(cancelled=cancelled)
        for order_id in order_ids:
            error = outcomes[order_id]
            if error is None:
                result.succeeded.append(order_id)
            else:
                result.failed.append((order_id, error))
        return result


class BatchProcessor:
    def __init__(self, max_workers: int = 4) -> None:
        self.max_workers = max_workers

    def run(
        self,
        order_ids: Iterable[str],
        apply_one: Callable[[str], object],
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> BatchResult:
        unique_ids = list(dict.fromkeys(str(order_id) for order_id in order_ids))
        collector = _Collector()
        started = time.monotonic()
        stopped = threading.Event()

        def should_stop() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return True
            return timeout is not None and time.monotonic() - started >= timeout

        def work(order_id: str) -> None:
            if should_stop():
                stopped.set()
                collector.fail(
                    order_id,
                    OperationCancelled(
                        {"_entity": ["Batch stopped before this order was processed"]},
                        aggregate_id=order_id,
                    ),
                )
                return
            try:
                with backoffice.domain_context():
                    apply_one(order_id)
            except (FulfillmentError, ValidationError) as exc:
                collector.fail(order_id, exc)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Batch item crashed", order_id=order_id)
                collector.fail(order_id, exc)
            else:
                collector.succeed(order_id)

        if unique_ids:
            workers = min(self.max_workers, len(unique_ids))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="backoffice-batch") as pool:
                for future in [pool.submit(work, order_id) for order_id in unique_ids]:
                    future.result()

        result = collector.result(unique_ids, cancelled=stopped.is_set())
        logger.info(
            "Batch finished",
            total=result.total,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
            cancelled=result.cancelled,
        )
        return result
