from datetime import date
from typing import Optional

import pytest

from errors import InvalidStateError
from models import RecurringInterval, Transaction, TransactionType
from periods import month_period
from recurrence import (
    add_months,
    expand,
    first_occurrence_on_or_after,
    monthly_equivalent_cents,
    nth_occurrence,
)


def _txn(
    base: date,
    interval: Optional[RecurringInterval] = RecurringInterval.monthly,
    end: Optional[date] = None,
    recurring: bool = True,
) -> Transaction:
    return Transaction(
        id=7,
        title="Rent",
        amount_cents=250_000,
        date=base,
        type=TransactionType.expense,
        category_id=None,
        person_label="Together",
        is_recurring=recurring,
        recurring_interval=interval if recurring else None,
        recurring_end_date=end,
        is_paid=False,
    )


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)


def test_monthly_steps_keep_base_day_after_clamped_month():
    base = date(2024, 1, 31)
    assert nth_occurrence(base, RecurringInterval.monthly, 1) == date(2024, 2, 29)
    assert nth_occurrence(base, RecurringInterval.monthly, 2) == date(2024, 3, 31)
    assert nth_occurrence(base, RecurringInterval.monthly, 3) == date(2024, 4, 30)


def test_yearly_leap_day_clamps_in_common_years():
    base = date(2024, 2, 29)
    assert nth_occurrence(base, RecurringInterval.yearly, 1) == date(2025, 2, 28)
    assert nth_occurrence(base, RecurringInterval.yearly, 4) == date(2028, 2, 29)


def test_expand_base_month_returns_base_record():
    txn = _txn(date(2024, 1, 31))
    occurrence = expand(txn, month_period("2024-01"))
    assert occurrence is not None
    assert occurrence.date == date(2024, 1, 31)
    assert occurrence.is_instance is False


def test_expand_leap_year_month_end():
    txn = _txn(date(2024, 1, 31))
    feb = expand(txn, month_period("2024-02"))
    mar = expand(txn, month_period("2024-03"))
    assert feb is not None and feb.date == date(2024, 2, 29)
    assert mar is not None and mar.date == date(2024, 3, 31)
    assert feb.is_instance and mar.is_instance


def test_expand_never_projects_backwards():
    txn = _txn(date(2024, 5, 10))
    assert expand(txn, month_period("2024-04")) is None


def test_expand_respects_end_date():
    txn = _txn(date(2024, 1, 15), end=date(2024, 3, 14))
    assert expand(txn, month_period("2024-02")) is not None
    assert expand(txn, month_period("2024-03")) is None
    assert expand(txn, month_period("2024-04")) is None


def test_expand_end_date_on_occurrence_is_inclusive():
    txn = _txn(date(2024, 1, 15), end=date(2024, 3, 15))
    occurrence = expand(txn, month_period("2024-03"))
    assert occurrence is not None and occurrence.date == date(2024, 3, 15)


def test_expand_weekly_returns_first_occurrence_in_month():
    # 2024-01-03 + 5 weeks = 2024-02-07
    txn = _txn(date(2024, 1, 3), interval=RecurringInterval.weekly)
    occurrence = expand(txn, month_period("2024-02"))
    assert occurrence is not None and occurrence.date == date(2024, 2, 7)


def test_expand_daily_lands_on_first_of_month():
    txn = _txn(date(2024, 1, 20), interval=RecurringInterval.daily)
    occurrence = expand(txn, month_period("2024-03"))
    assert occurrence is not None and occurrence.date == date(2024, 3, 1)


def test_expand_yearly_only_in_anniversary_month():
    txn = _txn(date(2023, 6, 10), interval=RecurringInterval.yearly)
    assert expand(txn, month_period("2024-05")) is None
    occurrence = expand(txn, month_period("2024-06"))
    assert occurrence is not None and occurrence.date == date(2024, 6, 10)


def test_expand_non_recurring_only_in_its_month():
    txn = _txn(date(2024, 3, 5), recurring=False)
    assert expand(txn, month_period("2024-03")) is not None
    assert expand(txn, month_period("2024-04")) is None


def test_expand_recurring_without_interval_raises():
    txn = _txn(date(2024, 1, 1), interval=None)
    with pytest.raises(InvalidStateError):
        expand(txn, month_period("2024-02"))


def test_first_occurrence_on_or_after():
    txn = _txn(date(2024, 1, 31), end=date(2024, 6, 30))
    assert first_occurrence_on_or_after(txn, date(2024, 2, 10)) == date(2024, 2, 29)
    assert first_occurrence_on_or_after(txn, date(2024, 1, 1)) == date(2024, 1, 31)
    assert first_occurrence_on_or_after(txn, date(2024, 7, 1)) is None


def test_monthly_equivalent_cents():
    assert monthly_equivalent_cents(1000, RecurringInterval.daily) == 30_000
    assert monthly_equivalent_cents(1200, RecurringInterval.weekly) == 5200
    assert monthly_equivalent_cents(999, RecurringInterval.monthly) == 999
    assert monthly_equivalent_cents(12_006, RecurringInterval.yearly) == 1001
