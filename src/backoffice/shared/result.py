"""Result type shared by every workflow step."""

from dataclasses import dataclass, field


@dataclass
class TransitionResult:
    """Outcome of a workflow step: the aggregate plus the history it produced.

    ``changed`` is False for idempotent no-ops, which carry no entries and
    must not be persisted.
    """

    aggregate: object
    entries: list = field(default_factory=list)
    changed: bool = True
