"""Repository wiring for the backoffice service."""

from dataclasses import dataclass

import structlog
from sqlalchemy.engine import make_url

from backoffice.audit.log import AuditSink
from backoffice.config import Settings
from backoffice.domain import backoffice
from backoffice.persistence.port import IssueRepository, OrderRepository, ReturnRepository
from backoffice.persistence.repositories import (
    ProteanAuditSink,
    ProteanIssueRepository,
    ProteanOrderRepository,
    ProteanReturnRepository,
)
from backoffice.persistence.store import Store
from backoffice.utils.db import configure_database, setup_db

logger = structlog.get_logger(__name__)


@dataclass
class Repositories:
    orders: OrderRepository
    returns: ReturnRepository
    issues: IssueRepository
    audit_sink: AuditSink
    store: Store


def repositories_over(store: Store, timeout: float) -> Repositories:
    """Adapters sharing ``store``, over whatever provider the domain already has."""
    return Repositories(
        orders=ProteanOrderRepository(store),
        returns=ProteanReturnRepository(store),
        issues=ProteanIssueRepository(store),
        audit_sink=ProteanAuditSink(store, timeout),
        store=store,
    )


def build_repositories(settings: Settings) -> Repositories:
    """Configure the domain's default provider from ``settings`` and wire the adapters."""
    configure_database(backoffice, settings)
    if settings.repository == "sql":
        setup_db(backoffice)
        database = make_url(settings.database_uri).render_as_string(hide_password=True)
        logger.info("Using SQL repositories", database=database)
    else:
        logger.info("Using in-memory repositories")
    return repositories_over(Store(), settings.repository_timeout)
