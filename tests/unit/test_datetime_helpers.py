"""Tests for date/time helpers (progression/utils/datetime_helpers.py)"""
from datetime import date, datetime, timezone, timedelta

from progression.utils.datetime_helpers import (
    UTC,
    days_between,
    is_weekend,
    start_of_day,
    sunday_based_weekday,
    to_utc,
    week_bounds,
)
from progression.utils.math_helpers import round_half_up


def test_sunday_based_weekday():
    assert sunday_based_weekday(date(2026, 10, 18)) == 0  # Sunday
    assert sunday_based_weekday(date(2026, 10, 19)) == 1  # Monday
    assert sunday_based_weekday(date(2026, 10, 24)) == 6  # Saturday


def test_week_bounds():
    assert week_bounds(date(2026, 10, 24)) == (date(2026, 10, 18), date(2026, 10, 24))
    assert week_bounds(date(2026, 10, 18)) == (date(2026, 10, 18), date(2026, 10, 24))


def test_days_between():
    assert days_between(date(2026, 10, 17), date(2026, 10, 18)) == 1
    assert days_between(date(2026, 10, 18), date(2026, 10, 17)) == -1


def test_to_utc_converts_offsets():
    eastern = datetime(2026, 10, 18, 23, 30, tzinfo=timezone(timedelta(hours=-4)))

    converted = to_utc(eastern)

    assert converted.date() == date(2026, 10, 19)
    assert converted.hour == 3


def test_to_utc_assumes_naive_is_utc():
    assert to_utc(datetime(2026, 10, 18, 9, 0)).tzinfo == UTC


def test_is_weekend_and_start_of_day():
    assert is_weekend(datetime(2026, 10, 18, tzinfo=UTC)) is True
    assert is_weekend(datetime(2026, 10, 19, tzinfo=UTC)) is False
    assert start_of_day(date(2026, 10, 18)) == datetime(2026, 10, 18, tzinfo=UTC)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(13.3) == 13
