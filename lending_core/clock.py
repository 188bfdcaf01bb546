"""
Clock -- injectable "as of" date source.

Penalty accrual and payment recording never call ``date.today()`` directly;
they ask a Clock so runs are deterministic under test.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Abstract clock interface"""

    @abstractmethod
    def today(self) -> date:
        """Get the current business date."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time (UTC calendar date)."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()


class FixedClock(Clock):
    """Test clock pinned to a business date until moved."""

    def __init__(self, fixed_date: Optional[date] = None):
        self._date = fixed_date or date(2024, 1, 1)

    def today(self) -> date:
        return self._date

    def set_date(self, new_date: date) -> None:
        self._date = new_date

    def advance(self, days: int = 1) -> date:
        self._date = self._date + timedelta(days=days)
        return self._date
