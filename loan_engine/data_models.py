"""Data models for the loan engine.

This module defines dataclasses representing the entities the engine works
with: tiered interest-rate periods and the schedule they form, the loan
itself, recorded payments and the derived schedule entries. Using
dataclasses makes it easy to construct, inspect and serialize these
structures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from .errors import ConfigurationError
from .utils import ZERO, Number, to_decimal

MONTHS = "months"
YEARS = "years"


@dataclass(frozen=True)
class MonthlyRate:
    """A rate period keyed by months since the loan start.

    Attributes
    ----------
    start_month: int
        First 0-indexed month the rate applies to.
    end_month: Optional[int]
        Last 0-indexed month the rate applies to (inclusive). ``None`` means
        the period is open-ended.
    rate: Decimal
        Annual nominal interest rate in percent.
    """

    start_month: int
    end_month: Optional[int]
    rate: Decimal


@dataclass(frozen=True)
class YearlyRate:
    """A rate period that applies until ``years`` have elapsed since origination.

    The period covers ``[previous threshold, years)``.
    """

    years: int
    rate: Decimal


RatePeriod = Union[MonthlyRate, YearlyRate]


@dataclass(frozen=True)
class RateSchedule:
    """An ordered, gap-free set of rate periods of a single kind.

    Periods are sorted on construction. A schedule never mixes month-keyed and
    year-keyed periods; persisted data in either shape is normalized into one
    of the two at the boundary (see ``loan_engine.rates.parse_rate_schedule``).
    """

    periods: Tuple[RatePeriod, ...]

    def __post_init__(self) -> None:
        periods = tuple(self.periods)
        if not periods:
            raise ConfigurationError("Interest rate schedule must not be empty")
        kinds = {type(p) for p in periods}
        if len(kinds) != 1 or not kinds <= {MonthlyRate, YearlyRate}:
            raise ConfigurationError(
                "Interest rate schedule must contain only month-keyed or only year-keyed periods"
            )
        for p in periods:
            if p.rate < 0:
                raise ConfigurationError(f"Interest rate must not be negative; got {p.rate}")
        if isinstance(periods[0], MonthlyRate):
            periods = tuple(sorted(periods, key=lambda p: p.start_month))
            _check_monthly(periods)
        else:
            periods = tuple(sorted(periods, key=lambda p: p.years))
            _check_yearly(periods)
        object.__setattr__(self, "periods", periods)

    @property
    def unit(self) -> str:
        return MONTHS if isinstance(self.periods[0], MonthlyRate) else YEARS

    @classmethod
    def flat(cls, rate: Number) -> "RateSchedule":
        """A single open-ended rate for the whole life of the loan."""
        return cls((MonthlyRate(0, None, to_decimal(rate)),))


def _check_monthly(periods: Tuple[MonthlyRate, ...]) -> None:
    if periods[0].start_month != 0:
        raise ConfigurationError("The first rate period must start at month 0")
    for prev, nxt in zip(periods, periods[1:]):
        if prev.end_month is None:
            raise ConfigurationError("Only the last rate period may be open-ended")
        if nxt.start_month != prev.end_month + 1:
            raise ConfigurationError(
                f"Rate periods must be contiguous; month {prev.end_month} is followed by {nxt.start_month}"
            )
    for p in periods:
        if p.start_month < 0:
            raise ConfigurationError(f"start_month must not be negative; got {p.start_month}")
        if p.end_month is not None and p.end_month < p.start_month:
            raise ConfigurationError(
                f"end_month {p.end_month} is before start_month {p.start_month}"
            )


def _check_yearly(periods: Tuple[YearlyRate, ...]) -> None:
    thresholds = [p.years for p in periods]
    if thresholds[0] <= 0:
        raise ConfigurationError(f"Year thresholds must be positive; got {thresholds[0]}")
    if len(set(thresholds)) != len(thresholds):
        raise ConfigurationError("Year thresholds must be distinct")


@dataclass(frozen=True)
class Loan:
    """An amortizing loan.

    The loan is immutable after creation; only its payment collection, which
    the host keeps alongside it, changes over time. ``monthly_fee`` is added
    to the displayed payment but never reduces principal.
    """

    name: str
    principal: Decimal
    total_months: int
    rate_schedule: RateSchedule
    start_date: date
    currency: str = "USD"
    monthly_fee: Decimal = ZERO
    id: Optional[str] = None

    def validate(self) -> "Loan":
        if self.principal <= 0:
            raise ConfigurationError(f"Principal must be positive; got {self.principal}")
        if self.total_months <= 0:
            raise ConfigurationError(f"Term must be positive; got {self.total_months}")
        if self.monthly_fee < 0:
            raise ConfigurationError(f"Monthly fee must not be negative; got {self.monthly_fee}")
        return self


@dataclass
class LoanPayment:
    """A payment recorded against a loan.

    ``principal_portion + interest_portion == amount`` holds for payments
    created through ``loan_engine.engine.allocate_payment``. The portions are
    irrelevant when the payment is only replayed through the projector, which
    needs just ``date`` and ``amount``.
    """

    amount: Decimal
    date: date
    principal_portion: Decimal = ZERO
    interest_portion: Decimal = ZERO
    id: Optional[str] = None
    loan_id: Optional[str] = None
    # id of the ledger transaction the host created for this payment
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentSplit:
    """How an actual payment divides between interest and principal."""

    amount: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    accrued_interest: Decimal
    balance_before: Decimal
    accrual_start: date


@dataclass(frozen=True)
class ScheduleEntry:
    """An entry in the amortization schedule.

    Each entry corresponds to one month. ``payment`` includes ``fee``;
    ``principal`` and ``interest`` do not. When ``is_paid`` is True the
    payment is the amount actually recorded for that calendar month.
    """

    month: int
    date: date
    beginning_balance: Decimal
    payment: Decimal
    principal: Decimal
    interest: Decimal
    fee: Decimal
    ending_balance: Decimal
    is_paid: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "date": self.date.isoformat(),
            "beginningBalance": f"{self.beginning_balance:.2f}",
            "payment": f"{self.payment:.2f}",
            "principal": f"{self.principal:.2f}",
            "interest": f"{self.interest:.2f}",
            "fee": f"{self.fee:.2f}",
            "endingBalance": f"{self.ending_balance:.2f}",
            "isPaid": self.is_paid,
        }
