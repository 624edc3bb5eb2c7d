from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class Granularity(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


BUCKET_COUNTS = {
    Granularity.weekly: 12,
    Granularity.monthly: 12,
    Granularity.yearly: 5,
}


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def month_end(d: date) -> date:
    first = d.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def week_start(d: date, first_weekday: int) -> date:
    return d - timedelta(days=(d.weekday() - first_weekday) % 7)


def _label(granularity: Granularity, start: date, end: date) -> str:
    if granularity == Granularity.weekly:
        return f"{start:%b %d} - {end:%b %d}"
    if granularity == Granularity.monthly:
        return f"{start:%b %Y}"
    return f"{start:%Y}"


def bucket_periods(
    granularity: Granularity,
    *,
    today: Optional[date] = None,
    first_weekday: Optional[int] = None,
) -> list[Period]:
    """Calendar-aligned windows ending with the one that contains ``today``.

    Windows are returned oldest first. Both ends are inclusive.
    """
    granularity = Granularity(granularity)
    today = today or local_today()
    if first_weekday is None:
        first_weekday = get_settings().week_start_weekday
    count = BUCKET_COUNTS[granularity]

    periods: list[Period] = []
    for offset in range(count - 1, -1, -1):
        if granularity == Granularity.weekly:
            start = week_start(today, first_weekday) - timedelta(weeks=offset)
            end = start + timedelta(days=6)
        elif granularity == Granularity.monthly:
            start = add_months(today.replace(day=1), -offset)
            end = month_end(start)
        else:
            start = date(today.year - offset, 1, 1)
            end = date(today.year - offset, 12, 31)
        periods.append(Period(_label(granularity, start, end), start, end))
    return periods


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if not period or period == "all":
        return Period("all", date.min, date.max)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    first = today.replace(day=1)
    return Period("this_month", first, month_end(first))
