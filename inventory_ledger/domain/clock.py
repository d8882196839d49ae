"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that services and selectors never call
    ``datetime.now()`` or ``date.today()`` directly.  The clock also owns the
    business timezone: "today" for the ledger is the calendar date in that
    zone, not the server's.

Architecture position:
    Domain -- pure functional core, zero I/O (except SystemClock, which is
    the one sanctioned I/O boundary for time).

Audit relevance:
    Every ``transaction_date`` and every SAME_DAY / FUTURE_DATE / PAST_DATE
    classification is traceable to an injected Clock instance.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

DEFAULT_BUSINESS_TIMEZONE = ZoneInfo("Asia/Jakarta")


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today()`` returns the calendar date in the business timezone.
    """

    def __init__(self, business_timezone: tzinfo | None = None):
        self.business_timezone = business_timezone or DEFAULT_BUSINESS_TIMEZONE

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        """Get the current business date."""
        return self.now().astimezone(self.business_timezone).date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
    """

    def __init__(
        self,
        fixed_time: datetime | None = None,
        business_timezone: tzinfo | None = None,
    ):
        super().__init__(business_timezone)
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def advance_days(self, days: int = 1) -> None:
        """Advance the clock by whole days."""
        self.advance(days * 86400)
