"""Tiered interest-rate resolution.

A loan's rate can change over its life. The host application has persisted
rate schedules in two shapes over time: periods keyed by month ranges
(``startMonth``/``endMonth``) and periods keyed by cumulative year thresholds
(``years``). Both are normalized into a ``RateSchedule`` at the boundary by
``parse_rate_schedule``; everything past that point works on the normalized
form only.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Union

from .data_models import MONTHS, MonthlyRate, RateSchedule, YearlyRate
from .errors import ConfigurationError
from .utils import TWELVE, Number, decimal_from_str, months_between, to_decimal

logger = logging.getLogger(__name__)

ScheduleLike = Union[RateSchedule, Iterable[Union[MonthlyRate, YearlyRate]]]


def as_schedule(schedule: ScheduleLike) -> RateSchedule:
    if isinstance(schedule, RateSchedule):
        return schedule
    return RateSchedule(tuple(schedule))


def resolve_rate(schedule: ScheduleLike, elapsed: Number) -> Decimal:
    """Return the annual rate (percent) applicable after ``elapsed`` time.

    ``elapsed`` is in the schedule's unit: months for month-keyed schedules,
    years for year-keyed ones.

    Month-keyed periods are inclusive on both ends and are matched on the
    whole month containing ``elapsed``, so ``11.5`` resolves like ``11``.
    Year-keyed periods cover ``[previous threshold, years)``. Past the last
    declared period the last rate keeps applying.

    Raises
    ------
    ConfigurationError
        If the schedule is empty or ``elapsed`` is negative.
    """
    schedule = as_schedule(schedule)
    elapsed = to_decimal(elapsed)
    if elapsed < 0:
        raise ConfigurationError(f"Elapsed time must not be negative; got {elapsed}")

    if schedule.unit == MONTHS:
        month = int(elapsed)
        for period in schedule.periods:
            if month >= period.start_month and (period.end_month is None or month <= period.end_month):
                return period.rate
        return schedule.periods[-1].rate

    for period in schedule.periods:
        if elapsed < period.years:
            return period.rate
    return schedule.periods[-1].rate


def rate_for_month(schedule: ScheduleLike, month_index: int) -> Decimal:
    """Return the rate for the 0-indexed month of the loan's life."""
    schedule = as_schedule(schedule)
    if schedule.unit == MONTHS:
        return resolve_rate(schedule, month_index)
    return resolve_rate(schedule, Decimal(month_index) / TWELVE)


def rate_on_date(schedule: ScheduleLike, loan_start_date: date, day: date) -> Decimal:
    """Return the rate in force on ``day`` for a loan that started on ``loan_start_date``."""
    return rate_for_month(schedule, months_between(loan_start_date, day))


def _pick(raw: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    return None


def as_whole_number(value: Any, name: str) -> int:
    number = decimal_from_str(str(value))
    if number != number.to_integral_value():
        raise ConfigurationError(f"{name} must be a whole number; got {value}")
    return int(number)


def _parse_period(raw: Mapping[str, Any]) -> Union[MonthlyRate, YearlyRate]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Rate period must be an object; got {raw!r}")
    rate = _pick(raw, "rate")
    if rate is None:
        raise ConfigurationError(f"Rate period is missing 'rate': {dict(raw)}")
    rate = decimal_from_str(str(rate))

    years = _pick(raw, "years")
    start = _pick(raw, "startMonth", "start_month")
    if years is not None and start is not None:
        raise ConfigurationError(f"Rate period mixes 'years' and 'startMonth': {dict(raw)}")
    if years is not None:
        return YearlyRate(years=as_whole_number(years, "years"), rate=rate)
    if start is None:
        raise ConfigurationError(f"Rate period needs 'startMonth' or 'years': {dict(raw)}")
    end = _pick(raw, "endMonth", "end_month")
    return MonthlyRate(
        start_month=as_whole_number(start, "startMonth"),
        end_month=as_whole_number(end, "endMonth") if end is not None else None,
        rate=rate,
    )


def parse_rate_schedule(raw: Union[str, Iterable[Mapping[str, Any]]]) -> RateSchedule:
    """Normalize a persisted rate schedule into a ``RateSchedule``.

    ``raw`` may be a JSON string or an already decoded list of period
    objects, in either the month-range or the year-threshold shape, with
    camelCase or snake_case keys.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ConfigurationError(f"Rate schedule is not valid JSON: {exc}") from exc
    if isinstance(raw, Mapping) or not isinstance(raw, Iterable):
        raise ConfigurationError("Rate schedule must be a list of periods")
    periods = tuple(_parse_period(p) for p in raw)
    schedule = RateSchedule(periods)
    logger.debug("Parsed %s-keyed rate schedule with %d period(s)", schedule.unit, len(periods))
    return schedule


def schedule_to_json(schedule: RateSchedule) -> List[Dict[str, Any]]:
    """Return the JSON-serialisable form read back by ``parse_rate_schedule``."""
    result: List[Dict[str, Any]] = []
    for period in schedule.periods:
        if isinstance(period, YearlyRate):
            result.append({"years": period.years, "rate": str(period.rate)})
        else:
            item: Dict[str, Any] = {"startMonth": period.start_month, "rate": str(period.rate)}
            if period.end_month is not None:
                item["endMonth"] = period.end_month
            result.append(item)
    return result


def validate_schedule_covers(schedule: RateSchedule, total_months: int) -> None:
    """Reject a month-keyed schedule that stops before the loan's last month."""
    if schedule.unit != MONTHS:
        return
    last = schedule.periods[-1]
    if last.end_month is not None and last.end_month < total_months - 1:
        raise ConfigurationError(
            f"Rate schedule ends at month {last.end_month} but the loan runs {total_months} months"
        )
