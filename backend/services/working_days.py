"""Working-day calendar arithmetic.

A working day is a weekday that is not a holiday. Holiday lookup is
delegated to a predicate so tests can pin the calendar; the default
predicate comes from the ``holidays`` package for a single country.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Iterator, Optional

import holidays

logger = logging.getLogger(__name__)

DEFAULT_HOLIDAY_COUNTRY = "JP"


def to_day(value) -> date:
    """Truncate a datetime to its calendar date. Dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def iter_days(start, end) -> Iterator[date]:
    """Yield every calendar date from start to end, inclusive."""
    current = to_day(start)
    last = to_day(end)
    while current <= last:
        yield current
        current += timedelta(days=1)


def _no_holidays(day: date) -> bool:
    return False


class WorkingDayCalendar:
    """Weekend- and holiday-aware date arithmetic."""

    def __init__(self, is_holiday: Optional[Callable[[date], bool]] = None):
        self._is_holiday = is_holiday or _no_holidays

    @classmethod
    def for_country(cls, country: str = DEFAULT_HOLIDAY_COUNTRY,
                    extra_holidays: Optional[Iterable[str]] = None) -> "WorkingDayCalendar":
        """Build a calendar from a country's public holidays.

        Args:
            country: ISO country code understood by ``holidays`` (e.g. "JP")
            extra_holidays: Optional YYYY-MM-DD strings for company holidays

        Raises:
            NotImplementedError: if the country is not supported
        """
        country_holidays = holidays.country_holidays(country)
        extra = {date.fromisoformat(day) for day in (extra_holidays or [])}
        logger.info(f"Using {country} holiday calendar with {len(extra)} extra holidays")

        def is_holiday(day: date) -> bool:
            return day in extra or day in country_holidays

        return cls(is_holiday)

    def is_holiday(self, day) -> bool:
        return bool(self._is_holiday(to_day(day)))

    def is_working_day(self, day) -> bool:
        """True if the day is Monday-Friday and not a holiday."""
        day = to_day(day)
        return day.weekday() < 5 and not self.is_holiday(day)

    def add_working_days(self, start, days: int) -> date:
        """Return the date of the n-th working day strictly after start.

        ``days == 0`` returns start itself.
        """
        if days < 0:
            raise ValueError(f"Cannot add a negative number of working days: {days}")

        current = to_day(start)
        added = 0
        while added < days:
            current += timedelta(days=1)
            if self.is_working_day(current):
                added += 1
        return current

    def working_days_between(self, start, end) -> int:
        """Count working days in [start, end]. Zero if end is before start."""
        return sum(1 for day in iter_days(start, end) if self.is_working_day(day))
