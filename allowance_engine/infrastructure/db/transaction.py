"""
Transaction runner - read-modify-write with optimistic-concurrency retry

The unit of work gets a fresh Session per attempt and returns a TxResult.
Only TxResult.commit(...) is committed; TxResult.abort(...) is rolled back.
Write conflicts (version_id mismatch, unique key race, serialization/lock
failure) roll back and re-run the unit of work from a fresh read.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)

CONFLICT_ERRORS = (StaleDataError, IntegrityError, OperationalError)


class TransactionConflictError(RuntimeError):
    """Write conflicts persisted through the whole retry budget"""

    def __init__(self, attempts: int, last_error: Exception | None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Transaction conflict not resolved after {attempts} attempt(s): {last_error}")


@dataclass(frozen=True)
class TxResult:
    should_commit: bool
    value: Any = None

    @classmethod
    def commit(cls, value: Any = None) -> "TxResult":
        return cls(should_commit=True, value=value)

    @classmethod
    def abort(cls, value: Any = None) -> "TxResult":
        return cls(should_commit=False, value=value)


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], TxResult],
    max_attempts: int = 5,
) -> tuple[Any, int]:
    """
    Run `work` atomically, retrying on write conflicts.

    Returns:
        (result.value, attempts used)

    Raises:
        TransactionConflictError: conflicts on every attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        session = session_factory()
        try:
            result = work(session)
            if result.should_commit:
                session.commit()
            else:
                session.rollback()
            return result.value, attempt
        except CONFLICT_ERRORS as exc:
            session.rollback()
            last_error = exc
            logger.warning(
                "Write conflict, retrying (attempt %d/%d): %s",
                attempt, max_attempts, exc.__class__.__name__,
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    raise TransactionConflictError(max_attempts, last_error)
