"""Access gate over the domain's configured Protean provider.

Repository calls and multi-aggregate transactions pass through one ``Store``.
It bounds how long a caller waits for the store, and turns provider failures
into the backoffice error taxonomy:

    ExpectedVersionError            -> ConcurrentModification
    ObjectNotFoundError             -> NotFound
    IntegrityError (duplicate key)  -> ConcurrentModification
    OperationalError, pool timeout  -> Unavailable
"""

import threading
from contextlib import contextmanager

import structlog
from protean import UnitOfWork
from protean.exceptions import DatabaseError, ExpectedVersionError, TransactionError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from backoffice.errors import ConcurrentModification, Unavailable

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 5.0

_UNAVAILABLE = (OperationalError, PoolTimeoutError, DatabaseError)


def _unavailable(exc: Exception) -> Unavailable:
    logger.warning("Store unavailable", error=str(exc), error_type=exc.__class__.__name__)
    return Unavailable({"_entity": [f"Store unavailable: {exc.__class__.__name__}"]})


def _conflict(exc: Exception) -> ConcurrentModification:
    return ConcurrentModification({"version": [f"Changed by another writer: {exc}"]})


class Store:
    def __init__(self) -> None:
        self._lock = threading.RLock()

    @contextmanager
    def session(self, timeout: float = DEFAULT_TIMEOUT):
        """Hold the store for one repository call or a group of them."""
        if not self._lock.acquire(timeout=timeout):
            logger.warning("Store busy", timeout=timeout)
            raise Unavailable({"_entity": [f"Store busy; timed out after {timeout}s"]})
        try:
            yield
        except ExpectedVersionError as exc:
            raise _conflict(exc) from exc
        except IntegrityError as exc:
            raise _conflict(exc) from exc
        except _UNAVAILABLE as exc:
            raise _unavailable(exc) from exc
        except TransactionError as exc:
            cause = exc.__cause__
            if isinstance(cause, IntegrityError):
                raise _conflict(cause) from exc
            if isinstance(cause, _UNAVAILABLE):
                raise _unavailable(cause) from exc
            raise
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self, timeout: float = DEFAULT_TIMEOUT):
        """Commit every save made inside the block together, or none of them."""
        with self.session(timeout):
            with UnitOfWork():
                yield
