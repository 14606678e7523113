"""
Date-expression parsing for assistant commands.

Turns phrases like "Oct 2025", "last week" or "oct 1 to oct 15" into a
concrete DateRange. Returns None when the text holds no date expression;
callers treat that as "no date constraint".
"""
import calendar
import re
from datetime import date, timedelta
from typing import Optional

from app.models.query import DateRange
from app.utils.helpers import local_today


MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'september': 9, 'october': 10, 'november': 11, 'december': 12,
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7, 'aug': 8,
    'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

RANGE_PATTERN = re.compile(r'(\w+)\s+(\d+)\s+to\s+(\w+)\s+(\d+)')
YEAR_PATTERN = re.compile(r'\b(20\d{2})\b')

# An unqualified month further ahead than this is read as last year's
MAX_MONTHS_AHEAD = 2


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _clamp_to_today(start: date, end: date, today: date) -> DateRange:
    """Month-to-date: cut a future end date back to today."""
    if start <= today < end:
        return DateRange(start_date=start.isoformat(), end_date=today.isoformat(), is_mtd=True)
    return DateRange(start_date=start.isoformat(), end_date=end.isoformat())


def _week_start(today: date) -> date:
    """Sunday on or before today."""
    return today - timedelta(days=(today.weekday() + 1) % 7)


def find_month(text: str) -> Optional[int]:
    """First month name (full or abbreviated) appearing as a whole word."""
    lower = text.lower()
    for name, number in MONTHS.items():
        if re.search(rf'\b{name}\b', lower):
            return number
    return None


def infer_year(month: int, today: date) -> int:
    """Current year, unless that month is more than two months ahead."""
    if month - today.month > MAX_MONTHS_AHEAD:
        return today.year - 1
    return today.year


def parse_date(text: str, today: Optional[date] = None) -> Optional[DateRange]:
    """
    Parse a date expression out of free text.

    Recognized, first match wins:
        "<month> <day> to <month> <day>" (current year)
        month name with optional 4-digit year
        "last week" (previous Sunday to Saturday)
        "this week" (Sunday to Saturday)
        "this month"
        "today"
        "last month"
        "ytd" / "year to date" / "this year"

    Whole-month ranges whose end lies in the future are clamped to today
    and flagged is_mtd.
    """
    if not text:
        return None
    today = today or local_today()
    lower = text.lower()

    # Explicit day ranges win over a bare month name in the same text
    range_match = RANGE_PATTERN.search(lower)
    if range_match:
        month1 = MONTHS.get(range_match.group(1))
        month2 = MONTHS.get(range_match.group(3))
        if month1 and month2:
            try:
                start = date(today.year, month1, int(range_match.group(2)))
                end = date(today.year, month2, int(range_match.group(4)))
            except ValueError:
                return None
            return DateRange(start_date=start.isoformat(), end_date=end.isoformat())

    month = find_month(lower)
    if month:
        year_match = YEAR_PATTERN.search(text)
        year = int(year_match.group(1)) if year_match else infer_year(month, today)
        return _clamp_to_today(date(year, month, 1), _month_end(year, month), today)

    if 'last week' in lower:
        start = _week_start(today) - timedelta(days=7)
        return DateRange(start_date=start.isoformat(), end_date=(start + timedelta(days=6)).isoformat())

    if 'this week' in lower:
        start = _week_start(today)
        return DateRange(start_date=start.isoformat(), end_date=(start + timedelta(days=6)).isoformat())

    if 'this month' in lower:
        start = today.replace(day=1)
        return _clamp_to_today(start, _month_end(today.year, today.month), today)

    if 'today' in lower:
        return DateRange(start_date=today.isoformat(), end_date=today.isoformat())

    if 'last month' in lower:
        end = today.replace(day=1) - timedelta(days=1)
        return DateRange(start_date=end.replace(day=1).isoformat(), end_date=end.isoformat())

    if re.search(r'\bytd\b', lower) or 'year to date' in lower or 'this year' in lower:
        return DateRange(start_date=date(today.year, 1, 1).isoformat(), end_date=today.isoformat())

    return None
