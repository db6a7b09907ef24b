from __future__ import annotations

import json
from decimal import Decimal

import pytest

from loan_engine.data_models import MONTHS, YEARS, MonthlyRate, RateSchedule, YearlyRate
from loan_engine.errors import ConfigurationError
from loan_engine.rates import (
    parse_rate_schedule,
    rate_for_month,
    resolve_rate,
    schedule_to_json,
    validate_schedule_covers,
)


@pytest.fixture
def yearly() -> RateSchedule:
    return RateSchedule((YearlyRate(10, Decimal("4")), YearlyRate(5, Decimal("3"))))


def test_two_tier_boundaries(two_tier: RateSchedule) -> None:
    assert resolve_rate(two_tier, 11) == Decimal("5")
    assert resolve_rate(two_tier, 12) == Decimal("8")


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (0, "5"),
        (Decimal("11.5"), "5"),
        (Decimal("11.99"), "5"),
        (12, "8"),
        (240, "8"),
    ],
)
def test_monthly_resolution_is_total(two_tier: RateSchedule, elapsed, expected: str) -> None:
    assert resolve_rate(two_tier, elapsed) == Decimal(expected)


def test_closed_schedule_keeps_last_rate_past_its_end() -> None:
    schedule = RateSchedule((MonthlyRate(0, 11, Decimal("5")), MonthlyRate(12, 23, Decimal("8"))))
    assert resolve_rate(schedule, 30) == Decimal("8")


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (0, "3"),
        (Decimal("4.99"), "3"),
        (5, "4"),
        (Decimal("9.5"), "4"),
        (10, "4"),
        (25, "4"),
    ],
)
def test_yearly_thresholds_are_exclusive(yearly: RateSchedule, elapsed, expected: str) -> None:
    assert resolve_rate(yearly, elapsed) == Decimal(expected)


def test_yearly_periods_are_sorted(yearly: RateSchedule) -> None:
    assert [p.years for p in yearly.periods] == [5, 10]
    assert yearly.unit == YEARS


def test_rate_for_month_converts_to_years(yearly: RateSchedule) -> None:
    assert rate_for_month(yearly, 59) == Decimal("3")
    assert rate_for_month(yearly, 60) == Decimal("4")


def test_negative_elapsed_is_rejected(two_tier: RateSchedule) -> None:
    with pytest.raises(ConfigurationError):
        resolve_rate(two_tier, -1)


def test_empty_schedule_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        resolve_rate([], 0)


@pytest.mark.parametrize(
    "periods",
    [
        (MonthlyRate(1, None, Decimal("5")),),
        (MonthlyRate(0, 11, Decimal("5")), MonthlyRate(13, None, Decimal("8"))),
        (MonthlyRate(0, None, Decimal("5")), MonthlyRate(12, None, Decimal("8"))),
        (MonthlyRate(0, 11, Decimal("5")), YearlyRate(2, Decimal("8"))),
        (MonthlyRate(0, None, Decimal("-1")),),
        (YearlyRate(0, Decimal("5")),),
        (YearlyRate(5, Decimal("5")), YearlyRate(5, Decimal("6"))),
    ],
    ids=["late-start", "gap", "open-middle", "mixed", "negative-rate", "zero-years", "duplicate-years"],
)
def test_malformed_schedules_are_rejected(periods) -> None:
    with pytest.raises(ConfigurationError):
        RateSchedule(periods)


def test_parse_month_keyed_json() -> None:
    schedule = parse_rate_schedule(
        json.dumps([{"startMonth": 12, "rate": 8}, {"startMonth": 0, "endMonth": 11, "rate": 5.25}])
    )
    assert schedule.unit == MONTHS
    assert schedule.periods == (
        MonthlyRate(0, 11, Decimal("5.25")),
        MonthlyRate(12, None, Decimal("8")),
    )


def test_parse_snake_case_and_year_keyed() -> None:
    assert parse_rate_schedule([{"start_month": 0, "end_month": None, "rate": "6"}]).periods == (
        MonthlyRate(0, None, Decimal("6")),
    )
    assert parse_rate_schedule([{"years": 3, "rate": 2.5}]).periods == (YearlyRate(3, Decimal("2.5")),)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        {"startMonth": 0, "rate": 5},
        [{"startMonth": 0}],
        [{"rate": 5}],
        [{"startMonth": 0, "years": 1, "rate": 5}],
        [{"startMonth": 0.5, "rate": 5}],
        [],
    ],
)
def test_parse_rejects_bad_input(raw) -> None:
    with pytest.raises(ConfigurationError):
        parse_rate_schedule(raw)


def test_schedule_json_reads_back(two_tier: RateSchedule) -> None:
    assert parse_rate_schedule(json.dumps(schedule_to_json(two_tier))) == two_tier


def test_validate_schedule_covers(two_tier: RateSchedule) -> None:
    validate_schedule_covers(two_tier, 360)
    short = RateSchedule((MonthlyRate(0, 11, Decimal("5")),))
    validate_schedule_covers(short, 12)
    with pytest.raises(ConfigurationError):
        validate_schedule_covers(short, 13)
