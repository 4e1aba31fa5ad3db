from datetime import date

import pytest

from errors import ValidationError
from periods import (
    month_period,
    months_between,
    parse_day,
    parse_month_key,
    summary_periods,
    week_period,
)


def test_parse_month_key_accepts_zero_padded_keys():
    assert parse_month_key("2024-02") == date(2024, 2, 1)


@pytest.mark.parametrize("value", ["2024-2", "2024-13", "24-02", "2024/02", "", "1969-12"])
def test_parse_month_key_rejects_malformed(value):
    with pytest.raises(ValidationError):
        parse_month_key(value)


def test_month_period_bounds():
    feb = month_period("2024-02")
    assert feb.slug == "2024-02"
    assert (feb.start, feb.end) == (date(2024, 2, 1), date(2024, 2, 29))
    dec = month_period(date(2023, 12, 17))
    assert (dec.start, dec.end) == (date(2023, 12, 1), date(2023, 12, 31))


def test_months_between_covers_partial_months():
    slugs = [p.slug for p in months_between(date(2024, 1, 29), date(2024, 3, 2))]
    assert slugs == ["2024-01", "2024-02", "2024-03"]


def test_week_period_sunday_and_monday_start():
    wednesday = date(2024, 5, 15)
    sunday_week = week_period(wednesday)
    assert (sunday_week.start, sunday_week.end) == (date(2024, 5, 12), date(2024, 5, 18))
    monday_week = week_period(wednesday, week_start="monday")
    assert (monday_week.start, monday_week.end) == (date(2024, 5, 13), date(2024, 5, 19))


def test_summary_periods():
    periods = summary_periods(date(2024, 5, 15))
    assert periods["next_week"].start == date(2024, 5, 19)
    assert periods["this_month"].end == date(2024, 5, 31)
    assert periods["this_year"].start == date(2024, 1, 1)


def test_parse_day():
    assert parse_day(None) is None
    assert parse_day("2024-05-15") == date(2024, 5, 15)
    with pytest.raises(ValidationError):
        parse_day("15.05.2024")
