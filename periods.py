import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional, Union

from errors import ValidationError

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def month_end(day: date) -> date:
    first = day.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def month_key_for(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def parse_month_key(value: str) -> date:
    """Return the first day of the ``yyyy-MM`` month, rejecting anything else."""
    match = _MONTH_KEY_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid month key {value!r}, expected yyyy-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1970:
        raise ValidationError(f"Invalid month key {value!r}")
    return date(year, month, 1)


def month_period(month: Union[str, date]) -> Period:
    if isinstance(month, str):
        first = parse_month_key(month)
    else:
        first = month.replace(day=1)
    return Period(month_key_for(first), first, month_end(first))


def months_between(start: date, end: date) -> Iterator[Period]:
    """Yield every calendar month overlapping ``[start, end]``."""
    current = start.replace(day=1)
    while current <= end:
        period = month_period(current)
        yield period
        current = period.end + timedelta(days=1)


def week_period(day: date, *, week_start: str = "sunday", slug: str = "week") -> Period:
    # date.weekday(): Monday == 0
    offset = day.weekday() if week_start == "monday" else (day.weekday() + 1) % 7
    start = day - timedelta(days=offset)
    return Period(slug, start, start + timedelta(days=6))


def summary_periods(
    today: date, *, week_start: str = "sunday"
) -> dict[str, Period]:
    this_week = week_period(today, week_start=week_start, slug="this_week")
    next_week = week_period(
        this_week.end + timedelta(days=1), week_start=week_start, slug="next_week"
    )
    this_month = month_period(today)
    return {
        "this_week": this_week,
        "next_week": next_week,
        "this_month": Period("this_month", this_month.start, this_month.end),
        "this_year": Period(
            "this_year", date(today.year, 1, 1), date(today.year, 12, 31)
        ),
    }


def parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc
