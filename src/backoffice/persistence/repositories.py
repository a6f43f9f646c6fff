"""Repository ports backed by Protean repositories.

Every call resolves ``current_domain.repository_for(...)``, so the same
adapters run against whichever provider the domain is configured with: the
in-memory provider or an SQLAlchemy database (see ``backoffice.utils.db``).
Optimistic concurrency is Protean's own ``_version`` check; ``version`` on the
aggregates reads it as 0 for a new aggregate and 1 once it is stored.
"""

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from backoffice.audit.entry import AuditEntry
from backoffice.audit.log import AuditSink
from backoffice.errors import ConcurrentModification, NotFound
from backoffice.issue.issue import Issue
from backoffice.order.order import Order
from backoffice.persistence.port import (
    IssueRepository,
    OrderRepository,
    ReturnRepository,
    matches_filters,
    newest_first,
)
from backoffice.persistence.store import DEFAULT_TIMEOUT, Store
from backoffice.returns.return_request import ReturnRequest

logger = structlog.get_logger(__name__)


class _AggregateRepository:
    aggregate_cls = None
    label = "aggregate"

    def __init__(self, store: Store | None = None) -> None:
        self.store = store or Store()

    def _repository(self):
        return current_domain.repository_for(self.aggregate_cls)

    def _warm(self, aggregate):
        """Load child entities while the store is still held."""
        return aggregate

    def _query(self, **filters) -> list:
        query = self._repository().query
        if filters:
            query = query.filter(**filters)
        return [self._warm(aggregate) for aggregate in query.limit(None).all().items]

    def _load(self, aggregate_id, timeout):
        with self.store.session(timeout):
            aggregate = self._repository().get_or_none(str(aggregate_id))
            if aggregate is not None:
                self._warm(aggregate)
        if aggregate is None:
            raise NotFound({"id": [f"{self.label} {aggregate_id} does not exist"]}, aggregate_id=aggregate_id)
        return aggregate

    def _stored_version(self, key: str) -> int:
        stored = self._repository().get_or_none(key)
        return stored.version if stored is not None else 0

    def _save(self, aggregate, expected_version: int, timeout):
        key = str(aggregate.id)
        with self.store.session(timeout):
            repository = self._repository()
            if expected_version == 0:
                if repository.get_or_none(key) is not None:
                    raise ConcurrentModification(
                        {"id": [f"{self.label} {key} already exists"]},
                        aggregate_id=key,
                        current=self._stored_version(key),
                        attempted=expected_version,
                    )
            else:
                # Protean compares the stored _version with the one the aggregate carries
                aggregate._version = expected_version - 1
                aggregate._next_version = expected_version
            try:
                repository.add(aggregate)
            except ExpectedVersionError as exc:
                current = self._stored_version(key)
                logger.info("Stale write rejected", aggregate=self.label, aggregate_id=key, current=current)
                raise ConcurrentModification(
                    {"version": [f"{self.label} {key} is at version {current}, expected {expected_version}"]},
                    aggregate_id=key,
                    current=current,
                    attempted=expected_version,
                ) from exc
        return aggregate


class ProteanOrderRepository(_AggregateRepository, OrderRepository):
    aggregate_cls = Order
    label = "Order"

    def _warm(self, order):
        order.items  # noqa: B018
        return order

    def load(self, order_id, timeout=DEFAULT_TIMEOUT):
        return self._load(order_id, timeout)

    def save(self, order, expected_version, timeout=DEFAULT_TIMEOUT):
        return self._save(order, expected_version, timeout)

    def search(
        self,
        status=None,
        payment_status=None,
        text=None,
        placed_from=None,
        placed_to=None,
        timeout=DEFAULT_TIMEOUT,
    ):
        filters = {}
        if status:
            filters["status"] = status
        if payment_status:
            filters["payment_status"] = payment_status
        with self.store.session(timeout):
            orders = self._query(**filters)
        return newest_first([o for o in orders if matches_filters(o, text, placed_from, placed_to)])


class ProteanReturnRepository(_AggregateRepository, ReturnRepository):
    aggregate_cls = ReturnRequest
    label = "Return"

    def _warm(self, request):
        request.items  # noqa: B018
        return request

    def load(self, return_id, timeout=DEFAULT_TIMEOUT):
        return self._load(return_id, timeout)

    def save(self, request, expected_version, timeout=DEFAULT_TIMEOUT):
        return self._save(request, expected_version, timeout)

    def for_order(self, order_id, timeout=DEFAULT_TIMEOUT):
        with self.store.session(timeout):
            requests = self._query(order_id=str(order_id))
        return sorted(requests, key=lambda r: r.requested_at)


class ProteanIssueRepository(_AggregateRepository, IssueRepository):
    aggregate_cls = Issue
    label = "Issue"

    def load(self, issue_id, timeout=DEFAULT_TIMEOUT):
        return self._load(issue_id, timeout)

    def save(self, issue, expected_version, timeout=DEFAULT_TIMEOUT):
        return self._save(issue, expected_version, timeout)

    def for_order(self, order_id, timeout=DEFAULT_TIMEOUT):
        with self.store.session(timeout):
            issues = self._query(order_id=str(order_id))
        return sorted(issues, key=lambda i: i.reported_at)


class ProteanAuditSink(AuditSink):
    """Audit entries stored through the domain's provider.

    The insertion sequence is the highest stored sequence plus one, taken
    while the store is held.
    """

    def __init__(self, store: Store | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.store = store or Store()
        self.timeout = timeout

    def append(self, entry: AuditEntry) -> AuditEntry:
        with self.store.session(self.timeout):
            repository = current_domain.repository_for(AuditEntry)
            last = repository.query.order_by("-sequence").limit(1).all().first
            entry.sequence = (last.sequence if last is not None else 0) + 1
            repository.add(entry)
        return entry

    def entries_for(self, order_id: str) -> list[AuditEntry]:
        with self.store.session(self.timeout):
            query = current_domain.repository_for(AuditEntry).query.filter(order_id=str(order_id))
            return query.order_by("sequence").limit(None).all().items
