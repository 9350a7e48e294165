"""Tests for outlet key canonicalisation and daily log date keys."""

from datetime import date, timedelta

import pytest

from ecoplug_control.control.keys import (
    canonical_outlet,
    date_key,
    month_prefix,
    parse_date_key,
    same_outlet,
    to_display_name,
    to_outlet_key,
)


@pytest.mark.parametrize(
    "first, second",
    [
        ("Outlet 1", "Outlet_1"),
        ("outlet_1", "OUTLET 1"),
        ("Conference  Room Outlet", "Conference_Room_Outlet"),
        ("  Outlet 2 ", "Outlet_2"),
    ],
)
def test_display_and_key_forms_compare_equal(first: str, second: str) -> None:
    assert same_outlet(first, second)


def test_distinct_outlets_stay_distinct() -> None:
    assert canonical_outlet("Outlet 1") != canonical_outlet("Outlet 10")


def test_every_separator_is_converted() -> None:
    assert to_outlet_key("Main Hall Outlet 3") == "Main_Hall_Outlet_3"
    assert to_display_name("Main_Hall_Outlet_3") == "Main Hall Outlet 3"


def test_date_key_is_zero_padded() -> None:
    assert date_key(date(2025, 3, 7)) == "day_2025_03_07"
    assert month_prefix(date(2025, 3, 7)) == "day_2025_03_"


def test_date_key_round_trips_across_a_leap_year() -> None:
    day = date(2024, 1, 1)
    while day.year == 2024:
        assert parse_date_key(date_key(day)) == day
        day += timedelta(days=1)


@pytest.mark.parametrize(
    "key", ["day_2025_3_7", "day_2025_02_30", "2025_03_07", "day_2025_03_07_extra", ""]
)
def test_malformed_date_keys_parse_to_none(key: str) -> None:
    assert parse_date_key(key) is None
