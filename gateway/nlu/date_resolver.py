"""Relative and absolute date expressions -> DateRange, in the configured timezone."""
import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ..app.config import Config
from ..schemas.io_models import DateRange
from ..utils.logger import get_logger

logger = get_logger("nlu.dates")

ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


def today_in_timezone(timezone: str = None) -> date:
    return datetime.now(ZoneInfo(timezone or Config.TIMEZONE)).date()


def validate_date_format(value: str) -> bool:
    """True when ``value`` is ``YYYY-MM-DD`` and its components survive a round trip.

    ``2024-02-30`` fails: it would otherwise be silently normalized.
    """
    match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value or "")
    if not match:
        return False
    year, month, day = (int(p) for p in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError:
        return False
    return (parsed.year, parsed.month, parsed.day) == (year, month, day)


def normalize_date(value: str) -> Optional[str]:
    """Accepts ``YYYY-MM-DD``, ``M/D/YYYY`` or ``M-D-YYYY``; returns ISO or None."""
    if not value:
        return None
    value = value.strip()
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return value if validate_date_format(value) else None
    match = re.fullmatch(r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})", value)
    if match:
        month, day, year = match.groups()
        iso = f"{year}-{int(month):02d}-{int(day):02d}"
        return iso if validate_date_format(iso) else None
    return None


class DateResolver:
    """Resolves the date window a question refers to.

    Explicit ``YYYY-MM-DD`` tokens win over keywords. Two tokens are kept in
    the order written, even when reversed.
    """

    def __init__(self, timezone: str = None):
        self.timezone = timezone or Config.TIMEZONE

    def resolve(self, question: str, today: Optional[date] = None) -> Optional[DateRange]:
        q = question or ""
        ql = q.lower()
        today = today or today_in_timezone(self.timezone)

        explicit = [m.group(0) for m in ISO_DATE.finditer(q)]
        explicit = [d for d in explicit if validate_date_format(d)]
        if explicit:
            logger.info(f"[DATES] explicit dates: {explicit}")
            return DateRange(start_date=explicit[0], end_date=explicit[-1])

        if "today" in ql:
            return self._range(today, today)

        if "yesterday" in ql:
            yesterday = today - timedelta(days=1)
            return self._range(yesterday, yesterday)

        # Weeks start on Sunday
        days_since_sunday = (today.weekday() + 1) % 7

        if "this week" in ql:
            return self._range(today - timedelta(days=days_since_sunday), today)

        if "last week" in ql:
            end = today - timedelta(days=days_since_sunday + 1)
            return self._range(end - timedelta(days=6), end)

        if "this month" in ql:
            return self._range(today.replace(day=1), today)

        if "last month" in ql:
            end = today.replace(day=1) - timedelta(days=1)
            return self._range(end.replace(day=1), end)

        return None

    @staticmethod
    def _range(start: date, end: date) -> DateRange:
        return DateRange(start_date=start.isoformat(), end_date=end.isoformat())


def date_context(question: str) -> Optional[str]:
    ql = (question or "").lower()
    if "today" in ql:
        return "today"
    if "yesterday" in ql:
        return "yesterday"
    if re.search(r"this week|last week", ql):
        return "week"
    if re.search(r"this month|last month", ql):
        return "month"
    return None
