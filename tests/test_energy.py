"""Tests for energy aggregation and unit handling."""

from datetime import date

import pytest

from ecoplug_control.control.energy import (
    Correction,
    DailyLog,
    current_month_energy,
    daily_breakdown,
    range_energy,
    sum_energy,
    today_energy,
    usage_hours,
)
from ecoplug_control.control.keys import date_key
from ecoplug_control.control.units import Energy, Power, group_limit_as_energy

from conftest import log_entry

TODAY = date(2025, 10, 15)


def october_logs():
    return {
        date_key(date(2025, 9, 30)): log_entry(5.0),
        date_key(date(2025, 10, 1)): log_entry(0.25),
        date_key(date(2025, 10, 14)): log_entry(0.5),
        date_key(TODAY): log_entry(0.75),
        date_key(date(2025, 10, 16)): log_entry(9.0),
        "day_2025_10_3": log_entry(100.0),
        "not_a_log": "garbage",
    }


class TestUnits:
    def test_energy_conversions(self) -> None:
        assert Energy.from_wh(2000).kwh == pytest.approx(2.0)
        assert Energy.from_kwh(1.5).wh == pytest.approx(1500)
        assert Energy.from_power(Power.from_watts(500), 4).kwh == pytest.approx(2.0)

    def test_power_conversions(self) -> None:
        assert Power.from_kilowatts(1.2).watts == pytest.approx(1200)
        assert Power.from_watts(250).kilowatts == pytest.approx(0.25)

    def test_group_limit_is_a_watt_hour_budget(self) -> None:
        assert group_limit_as_energy(2000) == Energy(2.0)

    def test_energy_sums(self) -> None:
        assert sum([Energy(1.0), Energy(0.5)]) == Energy(1.5)
        assert Energy(1.0) - Energy(0.25) == Energy(0.75)


class TestSums:
    def test_today(self) -> None:
        assert today_energy(october_logs(), TODAY).kwh == pytest.approx(0.75)

    def test_current_month_stops_at_today(self) -> None:
        assert current_month_energy(october_logs(), TODAY).kwh == pytest.approx(1.5)

    def test_range_is_inclusive_and_spans_months(self) -> None:
        energy = range_energy(october_logs(), date(2025, 9, 30), date(2025, 10, 1))
        assert energy.kwh == pytest.approx(5.25)

    def test_inverted_range_is_zero(self) -> None:
        assert range_energy(october_logs(), TODAY, date(2025, 10, 1)) == Energy(0.0)

    def test_missing_logs_contribute_zero(self) -> None:
        assert sum_energy(None, [date_key(TODAY)]) == Energy(0.0)
        assert sum_energy({}, [date_key(TODAY)]) == Energy(0.0)
        assert sum_energy(october_logs(), ["day_2025_10_02", "not_a_log"]) == Energy(0.0)

    def test_non_numeric_fields_count_as_zero(self) -> None:
        logs = {date_key(TODAY): {"total_energy": "n/a", "usage_time_hours": None}}
        assert today_energy(logs, TODAY) == Energy(0.0)

    def test_usage_hours_and_breakdown(self) -> None:
        logs = {
            date_key(date(2025, 10, 14)): log_entry(0.5, 100, 5),
            date_key(TODAY): log_entry(0.2, 100, 2),
        }
        assert usage_hours(logs, date(2025, 10, 1), TODAY) == pytest.approx(7)
        breakdown = daily_breakdown(logs, date(2025, 10, 13), TODAY)
        assert list(breakdown) == [date(2025, 10, 13), date(2025, 10, 14), TODAY]
        assert breakdown[date(2025, 10, 13)] == Energy(0.0)
        assert breakdown[TODAY].kwh == pytest.approx(0.2)


class TestCorrection:
    def test_glitched_reading_is_replaced_by_runtime_energy(self) -> None:
        log = DailyLog.from_document(log_entry(0.5, avg_power=200, hours=5))
        assert log.corrected_energy(Correction()).kwh == pytest.approx(1.0)

    def test_consistent_reading_is_kept(self) -> None:
        log = DailyLog.from_document(log_entry(0.98, avg_power=200, hours=5))
        assert log.corrected_energy(Correction()).kwh == pytest.approx(0.98)

    def test_tiny_difference_is_kept(self) -> None:
        log = DailyLog.from_document(log_entry(0.0005, avg_power=1, hours=1))
        assert log.corrected_energy(Correction()).kwh == pytest.approx(0.0005)

    def test_no_runtime_means_no_correction(self) -> None:
        log = DailyLog.from_document(log_entry(0.5, avg_power=200, hours=0))
        assert log.corrected_energy(Correction()).kwh == pytest.approx(0.5)

    def test_correction_is_opt_in_for_sums(self) -> None:
        logs = {date_key(TODAY): log_entry(0.5, avg_power=200, hours=5)}
        assert today_energy(logs, TODAY).kwh == pytest.approx(0.5)
        assert today_energy(logs, TODAY, Correction()).kwh == pytest.approx(1.0)
