import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal

BudgetPreset = Literal["monthly", "yearly", "custom"]

DAY = timedelta(days=1)

_END_OF_DAY = time(23, 59, 59, 999999)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def parse_iso_date(value: str | date | None) -> date | None:
    """
    Accept ``YYYY-MM-DD`` or a full ISO datetime (its UTC date is used).
    Anything else yields None.
    """
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        parsed = parse_iso_datetime(text)
        return parsed.date() if parsed else None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, _END_OF_DAY, tzinfo=timezone.utc)


def month_start(year: int, month: int) -> datetime:
    return start_of_day(date(year, month, 1))


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_window(now: datetime, offset: int = 0) -> tuple[datetime, datetime]:
    """Half-open ``[start, next month start)`` window for the month ``offset`` away from ``now``."""
    now = ensure_utc(now)
    year, month = shift_month(now.year, now.month, offset)
    next_year, next_month = shift_month(year, month, 1)
    return month_start(year, month), month_start(next_year, next_month)


def monthly_preset(year: int, month: int) -> tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    return start_of_day(date(year, month, 1)), end_of_day(date(year, month, last_day))


def yearly_preset(year: int) -> tuple[datetime, datetime]:
    return start_of_day(date(year, 1, 1)), end_of_day(date(year, 12, 31))


def current_month_preset(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = ensure_utc(now or utcnow())
    return monthly_preset(now.year, now.month)


def next_month_preset(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = ensure_utc(now or utcnow())
    return monthly_preset(*shift_month(now.year, now.month, 1))


def current_year_preset(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = ensure_utc(now or utcnow())
    return yearly_preset(now.year)


def next_year_preset(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = ensure_utc(now or utcnow())
    return yearly_preset(now.year + 1)


def _short_date(value: datetime) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def format_budget_name(preset: BudgetPreset, start: datetime, end: datetime) -> str:
    if preset == "monthly":
        return f"{start.strftime('%B')} {start.year} Budget"
    if preset == "yearly":
        return f"{start.year} Budget"
    return f"{_short_date(start)} - {_short_date(end)} Budget"


def format_date_header(day: date, now: datetime | None = None) -> str:
    today = ensure_utc(now or utcnow()).date()
    if day == today:
        return "Today"
    if day == today - DAY:
        return "Yesterday"
    return f"{day.strftime('%B')} {day.day}, {day.year}"
