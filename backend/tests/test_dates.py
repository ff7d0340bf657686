from datetime import date, datetime, timezone

import pytest

from app.utils.dates import (
    as_utc, last_seven_dates, local_date_key, parse_date_param, parse_iso_datetime, parse_tz_offset,
    to_iso, utc_day_range
)


@pytest.mark.parametrize("value, expected", [
    ("2024-03-01", date(2024, 3, 1)),
    ("2024-02-30", None),
    ("2024-3-1", None),
    ("03/01/2024", None),
])
def test_parse_date_param(value, expected):
    assert parse_date_param(value) == expected


def test_missing_date_means_today():
    assert parse_date_param(None) == datetime.now(timezone.utc).date()


@pytest.mark.parametrize("value, expected", [
    (None, 0), ("abc", 0), ("-120", -120), ("90.7", 90), ("-9999", -720), ("9999", 840), ("nan", 0),
])
def test_parse_tz_offset(value, expected):
    assert parse_tz_offset(value) == expected


def test_utc_day_range_applies_offset():
    start, end = utc_day_range(date(2024, 3, 1), -120)

    assert to_iso(start) == "2024-02-29T22:00:00Z"
    assert to_iso(end) == "2024-03-01T21:59:59.999000Z"


def test_local_date_key():
    moment = datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)

    assert local_date_key(moment, 0) == date(2024, 3, 1)
    assert local_date_key(moment, -120) == date(2024, 3, 2)
    assert local_date_key(moment, 300) == date(2024, 3, 1)


def test_last_seven_dates_ends_on_the_day():
    days = last_seven_dates(date(2024, 3, 3))

    assert days[0] == date(2024, 2, 26)
    assert days[-1] == date(2024, 3, 3)
    assert len(days) == 7


def test_naive_values_are_treated_as_utc():
    assert as_utc(datetime(2024, 3, 1, 9)).tzinfo == timezone.utc
    assert parse_iso_datetime("2024-03-01T09:00:00Z") == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    assert parse_iso_datetime("not a date") is None
