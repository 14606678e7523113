"""
Helper utilities
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple, Union

import pytz


DateLike = Union[date, datetime, str]


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def round_money(amount: float) -> float:
    """Round to cents"""
    return round(float(amount), 2)


def parse_money(value: Optional[str]) -> float:
    """Parse a monetary string, 0 when missing or unparsable"""
    if value is None:
        return 0.0
    try:
        return float(str(value).replace("$", "").replace(",", "").strip())
    except ValueError:
        return 0.0


def format_currency(amount: float, currency: str = "USD") -> str:
    """Format amount as currency"""
    symbols = {"USD": "$", "EUR": "€", "GBP": "£"}
    symbol = symbols.get(currency, currency)
    return f"{symbol}{amount:,.2f}"


def to_date(value: DateLike) -> date:
    """Coerce a YYYY-MM-DD string, date or datetime to a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_date(value: DateLike) -> str:
    """Format as YYYY-MM-DD using local calendar fields"""
    return to_date(value).isoformat()


def days_between(start: DateLike, end: DateLike) -> int:
    """Absolute number of days between two dates"""
    return abs((to_date(end) - to_date(start)).days)


def split_date_range(start: DateLike, end: DateLike, max_days: int = 30) -> List[Tuple[str, str]]:
    """
    Split an inclusive date range into consecutive chunks of at most max_days.

    Returns:
        List of (start_date, end_date) string tuples covering the whole range
    """
    start_d, end_d = to_date(start), to_date(end)
    if days_between(start_d, end_d) <= max_days:
        return [(format_date(start_d), format_date(end_d))]

    chunks = []
    current = start_d
    while current <= end_d:
        chunk_end = min(current + timedelta(days=max_days - 1), end_d)
        chunks.append((format_date(current), format_date(chunk_end)))
        current = chunk_end + timedelta(days=1)
    return chunks


def format_countdown(seconds: float) -> str:
    """Format a duration as 'Xm Ys'"""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}m {seconds % 60}s"


def business_tz():
    """Timezone whose calendar fields are used for displayed dates"""
    from app.config import get_settings
    return pytz.timezone(get_settings().timezone)


def local_now() -> datetime:
    return datetime.now(business_tz())


def local_today() -> date:
    return local_now().date()


def to_local(moment: datetime) -> datetime:
    """Express an instant in the business timezone (naive values are taken as local)"""
    tz = business_tz()
    if moment.tzinfo is None:
        return tz.localize(moment)
    return moment.astimezone(tz)
