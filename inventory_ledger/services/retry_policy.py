"""
RetryPolicy -- bounded retry with randomized backoff for units of work.

Responsibility:
    Decides which storage failures are transient write conflicts (and so
    worth re-running the whole unit of work for) and how long to wait
    between attempts.

Architecture position:
    Services -- used by TransactionRecorder.

Invariants enforced:
    - At most ``max_attempts`` attempts (default 3).
    - Each wait is drawn uniformly from [backoff_min, backoff_max]
      (default 50-150 ms) so colliding writers drift apart.
    - Only unique-key violations, deadlocks and serialization failures are
      retryable.  CHECK/NOT NULL/FK violations are bugs and surface at once.
"""

import random
from dataclasses import dataclass

from sqlalchemy.exc import DBAPIError

from inventory_ledger.config import RetrySettings

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"

_RETRYABLE_PGCODES = frozenset({UNIQUE_VIOLATION, SERIALIZATION_FAILURE, DEADLOCK_DETECTED})


@dataclass(frozen=True)
class RetryPolicy:
    """Retry bound and jitter window, in seconds."""

    max_attempts: int = 3
    backoff_min: float = 0.05
    backoff_max: float = 0.15

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            backoff_min=settings.backoff_min_ms / 1000,
            backoff_max=settings.backoff_max_ms / 1000,
        )

    def backoff_seconds(self, rng: random.Random | None = None) -> float:
        return (rng or random).uniform(self.backoff_min, self.backoff_max)


def _sqlstate(exc: DBAPIError) -> str | None:
    return getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)


def is_unique_violation(exc: DBAPIError) -> bool:
    code = _sqlstate(exc)
    if code is not None:
        return code == UNIQUE_VIOLATION
    # SQLite reports "UNIQUE constraint failed: <table>.<column>"
    return "unique constraint" in str(exc.orig).lower()


def is_retryable_conflict(exc: DBAPIError) -> bool:
    """True for unique-key races, deadlocks and serialization failures."""
    code = _sqlstate(exc)
    if code is not None:
        return code in _RETRYABLE_PGCODES
    return is_unique_violation(exc)
