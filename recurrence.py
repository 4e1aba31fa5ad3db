from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidStateError
from models import RecurringInterval, Transaction, TransactionType
from periods import Period


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


@dataclass(frozen=True)
class Occurrence:
    """A transaction as it appears on one date; never persisted."""

    transaction_id: int
    date: date
    is_instance: bool
    title: str
    amount_cents: int
    type: TransactionType
    category_id: Optional[int]
    person_label: str
    is_recurring: bool
    recurring_interval: Optional[RecurringInterval]
    is_paid: bool
    notes: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.expense

    @classmethod
    def of(cls, txn: Transaction, on: date) -> "Occurrence":
        return cls(
            transaction_id=txn.id,
            date=on,
            is_instance=on != txn.date,
            title=txn.title,
            amount_cents=txn.amount_cents,
            type=txn.type,
            category_id=txn.category_id,
            person_label=txn.person_label,
            is_recurring=bool(txn.is_recurring),
            recurring_interval=txn.recurring_interval,
            is_paid=bool(txn.is_paid),
            notes=txn.notes,
        )

    def with_paid(self, is_paid: bool) -> "Occurrence":
        return replace(self, is_paid=is_paid)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Shift by whole calendar months, clamping the day at month end."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(base.day, days_in_month(year, month)))


def nth_occurrence(base: date, interval: RecurringInterval, n: int) -> date:
    # Monthly and yearly steps always count from the base date so that a
    # clamped Feb 29 does not pull March back to the 29th.
    if interval == RecurringInterval.daily:
        return base + timedelta(days=n)
    if interval == RecurringInterval.weekly:
        return base + timedelta(weeks=n)
    if interval == RecurringInterval.monthly:
        return add_months(base, n)
    return add_months(base, 12 * n)


def _steps_to_reach(base: date, interval: RecurringInterval, day: date) -> int:
    """Smallest n >= 0 with nth_occurrence(base, interval, n) >= day."""
    if day <= base:
        return 0
    if interval == RecurringInterval.daily:
        return (day - base).days
    if interval == RecurringInterval.weekly:
        return -(-(day - base).days // 7)
    if interval == RecurringInterval.monthly:
        n = (day.year - base.year) * 12 + (day.month - base.month)
    else:
        n = day.year - base.year
    if nth_occurrence(base, interval, n) < day:
        n += 1
    return n


def _interval_of(txn: Transaction) -> RecurringInterval:
    if txn.recurring_interval is None:
        raise InvalidStateError(
            f"Recurring transaction {txn.id} has no recurring interval"
        )
    return RecurringInterval(txn.recurring_interval)


def first_occurrence_on_or_after(txn: Transaction, day: date) -> Optional[date]:
    """First date of the series on or after ``day``, honouring the end date."""
    if not txn.is_recurring:
        return txn.date if txn.date >= day else None
    interval = _interval_of(txn)
    candidate = nth_occurrence(
        txn.date, interval, _steps_to_reach(txn.date, interval, day)
    )
    if txn.recurring_end_date is not None and candidate > txn.recurring_end_date:
        return None
    return candidate


def expand(txn: Transaction, month: Period) -> Optional[Occurrence]:
    """Project ``txn`` into ``month``: at most one occurrence, or None.

    The base date is returned as-is when it falls inside the month, so the
    base record is never produced a second time as a stepped instance.
    Nothing is projected backwards from a base date after the month.
    """
    if month.contains(txn.date):
        return Occurrence.of(txn, txn.date)
    if txn.date > month.end or not txn.is_recurring:
        return None

    occurrence_date = first_occurrence_on_or_after(txn, month.start)
    if occurrence_date is None or occurrence_date > month.end:
        return None
    return Occurrence.of(txn, occurrence_date)


_MONTHLY_FACTORS = {
    RecurringInterval.daily: (30, 1),
    RecurringInterval.weekly: (52, 12),
    RecurringInterval.monthly: (1, 1),
    RecurringInterval.yearly: (1, 12),
}


def monthly_equivalent_cents(amount_cents: int, interval: RecurringInterval) -> int:
    numerator, denominator = _MONTHLY_FACTORS[RecurringInterval(interval)]
    value = Decimal(amount_cents * numerator) / Decimal(denominator)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
