"""Error taxonomy for the backoffice domain.

Every failure carries a Protean-style ``messages`` dict plus enough context
(aggregate id, current state, attempted change) to render an actionable
message. ``retryable`` separates transient infrastructure failures from
business-rule violations so callers know which to retry silently.

Field-level validation (negative prices, zero quantities) stays with
Protean's ``ValidationError``, raised by the aggregate fields themselves.
"""


class FulfillmentError(Exception):
    """Base class for all backoffice failures."""

    retryable = False

    def __init__(self, messages, aggregate_id=None, current=None, attempted=None):
        if not isinstance(messages, dict):
            messages = {"_entity": [str(messages)]}
        self.messages = messages
        self.aggregate_id = str(aggregate_id) if aggregate_id is not None else None
        self.current = current
        self.attempted = attempted
        super().__init__(self.describe())

    @property
    def kind(self) -> str:
        return type(self).__name__

    def describe(self) -> str:
        parts = []
        for field, errors in self.messages.items():
            parts.extend(f"{field}: {error}" for error in errors)
        return "; ".join(parts)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "retryable": self.retryable,
            "aggregate_id": self.aggregate_id,
            "current": self.current,
            "attempted": self.attempted,
            "messages": self.messages,
        }


class InvalidTransition(FulfillmentError):
    """The requested state change is not permitted from the current state."""


class InvalidPaymentState(InvalidTransition):
    """The payment status does not allow the requested payment operation."""


class InvalidAmount(FulfillmentError):
    """A refund or quantity value is outside its permitted bounds."""


class OrderNotEligible(FulfillmentError):
    """A business precondition on the order failed."""


class MissingResolution(FulfillmentError):
    """A field required by the requested terminal state is absent."""


class NotFound(FulfillmentError):
    """The referenced aggregate does not exist."""


class ConcurrentModification(FulfillmentError):
    """The aggregate changed since it was loaded; reload and retry."""

    retryable = True


class Unavailable(FulfillmentError):
    """Transient infrastructure failure (timeout, store unreachable)."""

    retryable = True


class OperationCancelled(Unavailable):
    """A batch was cancelled or timed out before this item was attempted."""
