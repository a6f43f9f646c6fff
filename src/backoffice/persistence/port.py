"""Repository ports for the backoffice aggregates.

Each save is a compare-and-swap on ``version``: the caller passes the version
it loaded (0 for a new aggregate) and the store rejects the write with
``ConcurrentModification`` when someone else got there first. A successful
save bumps ``version`` on the aggregate it was handed.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from backoffice.issue.issue import Issue
from backoffice.order.order import Order
from backoffice.persistence.store import DEFAULT_TIMEOUT
from backoffice.returns.return_request import ReturnRequest
from backoffice.shared.clock import as_utc


class OrderRepository(ABC):
    @abstractmethod
    def load(self, order_id: str, timeout: float = DEFAULT_TIMEOUT) -> Order:
        """Return the order or raise ``NotFound``."""

    @abstractmethod
    def save(self, order: Order, expected_version: int, timeout: float = DEFAULT_TIMEOUT) -> Order:
        """Persist the order or raise ``ConcurrentModification``."""

    @abstractmethod
    def search(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        text: str | None = None,
        placed_from: datetime | None = None,
        placed_to: datetime | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> list[Order]:
        """Orders matching every given filter, newest placement first."""


class ReturnRepository(ABC):
    @abstractmethod
    def load(self, return_id: str, timeout: float = DEFAULT_TIMEOUT) -> ReturnRequest: ...

    @abstractmethod
    def save(
        self, request: ReturnRequest, expected_version: int, timeout: float = DEFAULT_TIMEOUT
    ) -> ReturnRequest: ...

    @abstractmethod
    def for_order(self, order_id: str, timeout: float = DEFAULT_TIMEOUT) -> list[ReturnRequest]: ...


class IssueRepository(ABC):
    @abstractmethod
    def load(self, issue_id: str, timeout: float = DEFAULT_TIMEOUT) -> Issue: ...

    @abstractmethod
    def save(self, issue: Issue, expected_version: int, timeout: float = DEFAULT_TIMEOUT) -> Issue: ...

    @abstractmethod
    def for_order(self, order_id: str, timeout: float = DEFAULT_TIMEOUT) -> list[Issue]: ...


def matches_filters(order: Order, text, placed_from, placed_to) -> bool:
    """Text and placement-window filters, applied after the store's status filters.

    SQL backends hand back naive datetimes, so both sides compare as UTC.
    """
    if text:
        needle = text.strip().lower()
        haystack = [str(order.id)]
        if order.customer is not None:
            haystack.extend([order.customer.name or "", order.customer.email or ""])
        if not any(needle in value.lower() for value in haystack):
            return False
    placed_at = as_utc(order.placed_at)
    if placed_from is not None and (placed_at is None or placed_at < as_utc(placed_from)):
        return False
    if placed_to is not None and (placed_at is None or placed_at > as_utc(placed_to)):
        return False
    return True


def newest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: (o.placed_at is not None, as_utc(o.placed_at)), reverse=True)
