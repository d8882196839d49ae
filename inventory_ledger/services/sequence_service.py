"""
SequenceService -- per-day document numbers via locked counter rows.

Responsibility:
    Allocates identifiers of the form ``{PREFIX}-{YYYYMMDD}-{seq}`` (for
    example ``TRX-20260310-007``).  The sequence restarts at 1 for every
    (prefix, calendar day).  A counter row per (prefix, day) is locked with
    ``SELECT ... FOR UPDATE``, so concurrent allocations for the same scope
    serialize while other prefixes and days proceed independently.

Architecture position:
    Services -- called by TransactionRecorder inside its unit of work, after
    ledger rows are locked.  Record prefixes (RPK, SMP) are allocated before
    TRX so the global lock order is rows, then record counters, then
    transaction counters.

Invariants enforced:
    - Numbers are unique per prefix and strictly increasing within a day.
    - On first use of a (prefix, day) the counter is seeded from the
      highest suffix already stored in the owning table, so numbers written
      before the counter existed are never reissued.
    - The increment is transactional: a rolled-back unit of work returns
      the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (absorbed via
      savepoint rollback and a locked re-read).
    - IntegrityError on the owning table if a number was inserted without
      going through this service; TransactionRecorder retries the whole unit.
"""

from datetime import date

from sqlalchemy import BigInteger, String, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import InstrumentedAttribute, Mapped, Session, mapped_column

from inventory_ledger.db.base import Base
from inventory_ledger.logging_config import get_logger

logger = get_logger("services.sequence")

DEFAULT_SEQUENCE_WIDTH = 3


class SequenceCounter(Base):
    """
    Sequence counter table.

    One row per (prefix, day), named ``{PREFIX}-{YYYYMMDD}``.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


def sequence_stem(prefix: str, business_date: date) -> str:
    return f"{prefix}-{business_date:%Y%m%d}"


def format_document_number(
    prefix: str,
    business_date: date,
    value: int,
    width: int = DEFAULT_SEQUENCE_WIDTH,
) -> str:
    """Format e.g. ("TRX", 2026-03-10, 7) as "TRX-20260310-007"."""
    return f"{sequence_stem(prefix, business_date)}-{value:0{width}d}"


class SequenceService:
    """
    Service for generating per-day document numbers.

    Contract:
        ``next_number(prefix, day)`` returns a formatted number that no
        other committed or in-flight unit of work holds.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` on the counter row serializes concurrent
          allocations for the same (prefix, day) until the caller's
          transaction ends.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Gap-free numbering across rolled-back attempts is not promised;
          only uniqueness and ordering.
    """

    def __init__(
        self,
        session: Session,
        sources: dict[str, InstrumentedAttribute] | None = None,
        width: int = DEFAULT_SEQUENCE_WIDTH,
    ):
        """
        Args:
            session: SQLAlchemy session (should be in a transaction).
            sources: Map of prefix -> number column of the table that owns
                numbers with that prefix.  Used to seed new counters.
            width: Zero-padding of the sequence suffix.
        """
        self._session = session
        self._sources = dict(sources or {})
        self._width = width

    def next_number(self, prefix: str, business_date: date) -> str:
        """
        Allocate the next document number for (prefix, business_date).

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - The counter row is locked until the transaction completes.

        Returns:
            Formatted number, e.g. "TRX-20260310-001".
        """
        value = self.next_value(sequence_stem(prefix, business_date), prefix)
        return format_document_number(prefix, business_date, value, self._width)

    def next_value(self, name: str, prefix: str | None = None) -> int:
        """
        Increment and return the counter called ``name``.

        Args:
            name: Counter name, e.g. "TRX-20260310".
            prefix: Prefix used to find the seed column (None: seed at 0).

        Returns:
            The next value (always > 0).
        """
        counter = self._lock_counter(name)

        if counter is None:
            seed = self._existing_max(name, prefix)
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=name, current_value=seed + 1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_counter_created",
                    extra={"sequence_name": name, "seed": seed, "value": seed + 1},
                )
                return counter.current_value
            except IntegrityError:
                # Another transaction created the counter first
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": name},
                )
                savepoint.rollback()
                counter = self._lock_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, prefix: str, business_date: date) -> int | None:
        """
        Get the current value for (prefix, business_date) without incrementing.

        Returns:
            Current value, or None if no number was allocated for that day yet.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_stem(prefix, business_date))
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def _lock_counter(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _existing_max(self, stem: str, prefix: str | None) -> int:
        """Highest numeric suffix already stored under ``stem``, or 0."""
        column = self._sources.get(prefix) if prefix else None
        if column is None:
            return 0

        # Longer suffixes sort first so 1000 beats 999
        latest = self._session.execute(
            select(column)
            .where(column.like(f"{stem}-%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
        ).scalar_one_or_none()
        if latest is None:
            return 0

        suffix = latest.rsplit("-", 1)[-1]
        return int(suffix) if suffix.isdigit() else 0
