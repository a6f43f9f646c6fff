"""Backoffice bounded context: order fulfillment and issue resolution.

Tracks orders through shipment, delivery, cancellation, returns and refunds,
alongside independently raised customer issues and payment reconciliation.
Every state change is recorded in an append-only audit trail.
"""

import structlog
from protean.domain import Domain

backoffice = Domain(name="backoffice")

logger = structlog.get_logger(__name__)
