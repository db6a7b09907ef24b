"""Core calculation engine for the loan engine.

This module implements the financial logic behind a loan's life: projecting a
month-by-month amortization schedule reconciled against the payments actually
recorded, accruing interest over arbitrary date ranges with an actual
days-in-month day count, and splitting a new payment between interest and
principal at the moment it is recorded. The aggregates the host displays
(remaining balance, total interest) are derived from the projected schedule
so they always agree with the schedule table.

Every monetary amount is rounded to cents at the point it is computed, not
only on output.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .data_models import Loan, LoanPayment, PaymentSplit, ScheduleEntry
from .errors import ConfigurationError
from .rates import ScheduleLike, as_schedule, rate_for_month, rate_on_date
from .utils import (
    HUNDRED,
    TWELVE,
    ZERO,
    Number,
    add_months,
    days_in_month,
    months_between,
    next_month_start,
    round2,
    to_decimal,
)

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)


def monthly_rate_from_annual(rate: Decimal) -> Decimal:
    return rate / HUNDRED / TWELVE


def annuity_payment(balance: Decimal, monthly_rate: Decimal, remaining_months: int) -> Decimal:
    """Return the level payment that retires ``balance`` over ``remaining_months``.

    The formula is:

        payment = B * i / (1 - (1 + i)^-n)

    where ``B`` is the balance, ``i`` is the monthly interest rate and ``n``
    is the number of remaining payments. When the interest rate is zero, the
    payment simplifies to ``B / n``. The result is rounded to cents, and the
    final payment is exactly the balance plus that month's rounded interest.
    """
    if remaining_months <= 0:
        raise ConfigurationError("Remaining term must be positive")
    if remaining_months == 1:
        return round2(balance) + round2(balance * monthly_rate)
    if monthly_rate == 0:
        return round2(balance / Decimal(remaining_months))
    return round2(balance * monthly_rate / (1 - (1 + monthly_rate) ** -remaining_months))


def _payments_by_month(payments: Iterable[Any]) -> Dict[Tuple[int, int], Decimal]:
    """Sum recorded payment amounts per calendar month.

    Several payments landing in the same calendar month are added together
    and count as that month's single actual payment.
    """
    mapping: Dict[Tuple[int, int], Decimal] = {}
    for payment in payments:
        amount = to_decimal(payment.amount)
        if amount <= 0:
            raise ConfigurationError(f"Payment amount must be positive; got {payment.amount} on {payment.date}")
        key = (payment.date.year, payment.date.month)
        mapping[key] = mapping.get(key, ZERO) + amount
    return mapping


def project_month(
    balance: Decimal,
    month_index: int,
    *,
    total_months: int,
    schedule: ScheduleLike,
    start_date: date,
    actual_payment: Optional[Decimal] = None,
    fixed_payment: Optional[Decimal] = None,
    monthly_fee: Decimal = ZERO,
) -> Tuple[Decimal, ScheduleEntry]:
    """Advance the schedule by one month.

    Returns the balance carried into the next month together with the entry
    describing this one. ``actual_payment`` is the amount recorded for this
    calendar month, if any; it replaces the scheduled payment.
    """
    month_date = add_months(start_date, month_index)
    monthly_rate = monthly_rate_from_annual(rate_for_month(schedule, month_index))

    interest = round2(balance * monthly_rate)
    if fixed_payment is not None:
        payment = fixed_payment
    else:
        payment = annuity_payment(balance, monthly_rate, total_months - month_index)
    principal = round2(payment - interest)

    is_paid = actual_payment is not None
    if is_paid:
        payment = actual_payment
        principal = round2(actual_payment - interest)

    ending = balance - principal
    # a final overpayment must not leave a negative balance
    if ending < 0:
        ending = ZERO
    ending = round2(ending)

    entry = ScheduleEntry(
        month=month_index + 1,
        date=month_date,
        beginning_balance=round2(balance),
        payment=round2(payment + monthly_fee),
        principal=principal,
        interest=interest,
        fee=round2(monthly_fee),
        ending_balance=ending,
        is_paid=is_paid,
    )
    return ending, entry


def project(
    principal: Number,
    total_months: int,
    schedule: ScheduleLike,
    start_date: date,
    payments: Iterable[Any] = (),
    fixed_payment: Optional[Number] = None,
    monthly_fee: Number = ZERO,
) -> List[ScheduleEntry]:
    """Compute the amortization schedule for a loan.

    Parameters
    ----------
    principal:
        The amount borrowed.
    total_months:
        Loan term in months.
    schedule:
        Tiered annual rates over the loan's life.
    start_date:
        Date of the first scheduled month; later months follow by calendar
        month arithmetic.
    payments:
        Recorded payments, any objects with ``date`` and ``amount``. A
        payment counts for the schedule month whose calendar month contains
        its date; same-month payments are summed.
    fixed_payment:
        Pay this amount every month instead of the re-amortized annuity
        payment.
    monthly_fee:
        Added to every displayed payment; does not reduce principal.

    Returns
    -------
    List[ScheduleEntry]
        One entry per month, stopping early once the balance reaches zero.
    """
    if total_months <= 0:
        raise ConfigurationError(f"Term must be positive; got {total_months}")
    balance = round2(principal)
    if balance <= 0:
        raise ConfigurationError(f"Principal must be positive; got {principal}")
    fee = to_decimal(monthly_fee)
    if fee < 0:
        raise ConfigurationError(f"Monthly fee must not be negative; got {monthly_fee}")
    fixed = to_decimal(fixed_payment) if fixed_payment is not None else None
    if fixed is not None and fixed <= 0:
        raise ConfigurationError(f"Fixed payment must be positive; got {fixed_payment}")
    schedule = as_schedule(schedule)
    paid_by_month = _payments_by_month(payments)

    entries: List[ScheduleEntry] = []
    for month_index in range(total_months):
        month_date = add_months(start_date, month_index)
        balance, entry = project_month(
            balance,
            month_index,
            total_months=total_months,
            schedule=schedule,
            start_date=start_date,
            actual_payment=paid_by_month.get((month_date.year, month_date.month)),
            fixed_payment=fixed,
            monthly_fee=fee,
        )
        entries.append(entry)
        if balance <= 0:
            break

    logger.debug(
        "Projected %d of %d month(s); %d paid, ending balance %s",
        len(entries),
        total_months,
        sum(1 for e in entries if e.is_paid),
        entries[-1].ending_balance,
    )
    return entries


def project_loan(
    loan: Loan, payments: Iterable[Any] = (), fixed_payment: Optional[Number] = None
) -> List[ScheduleEntry]:
    """Project ``loan`` reconciled against its recorded ``payments``."""
    loan.validate()
    return project(
        loan.principal,
        loan.total_months,
        loan.rate_schedule,
        loan.start_date,
        payments,
        fixed_payment=fixed_payment,
        monthly_fee=loan.monthly_fee,
    )


def accrued_interest(
    balance: Number,
    from_date: date,
    to_date: date,
    schedule: ScheduleLike,
    loan_start_date: date,
) -> Decimal:
    """Return the interest accrued on ``balance`` over ``[from_date, to_date)``.

    Each day accrues ``balance * monthly_rate / days_in_that_month`` at the
    rate in force on that day. The window is walked in segments that never
    straddle a calendar month end or a monthly anniversary of the loan start,
    so the rate and the day-count denominator are constant inside each
    segment. ``balance`` is held constant for the whole window.
    """
    balance = to_decimal(balance)
    if balance < 0:
        raise ConfigurationError(f"Balance must not be negative; got {balance}")
    if to_date < from_date:
        raise ConfigurationError(f"Accrual end {to_date} is before its start {from_date}")
    schedule = as_schedule(schedule)

    total = ZERO
    cursor = from_date
    while cursor < to_date:
        anniversary = add_months(loan_start_date, months_between(loan_start_date, cursor) + 1)
        segment_end = min(next_month_start(cursor), anniversary, to_date)
        days = (segment_end - cursor).days
        monthly_rate = monthly_rate_from_annual(rate_on_date(schedule, loan_start_date, cursor))
        total += balance * monthly_rate / days_in_month(cursor) * days
        cursor = segment_end

    logger.debug("Accrued %s on %s from %s to %s", total, balance, from_date, to_date)
    return round2(total)


def split_payment(amount: Number, accrued: Number) -> Tuple[Decimal, Decimal]:
    """Split ``amount`` into ``(interest_portion, principal_portion)``.

    Interest is paid first and is capped at the payment, so the principal
    portion is never negative and the two portions always add up to
    ``amount`` exactly.
    """
    amount = to_decimal(amount)
    if amount < 0:
        raise ConfigurationError(f"Payment amount must not be negative; got {amount}")
    interest = min(max(round2(accrued), ZERO), amount)
    return interest, amount - interest


def allocate_payment(
    loan: Loan, prior_payments: Sequence[LoanPayment], amount: Number, payment_date: date
) -> PaymentSplit:
    """Compute the interest/principal split of a payment about to be recorded.

    The balance before the payment is the principal less every earlier
    payment's principal portion. Interest accrues on that balance from the
    latest earlier payment (or the loan start, for the first payment) up to
    ``payment_date``.
    """
    loan.validate()
    amount = to_decimal(amount)
    if amount <= 0:
        raise ConfigurationError(f"Payment amount must be positive; got {amount}")

    ordered = sorted(prior_payments, key=lambda p: p.date)
    paid_principal = sum((to_decimal(p.principal_portion) for p in ordered), ZERO)
    balance_before = max(round2(loan.principal - paid_principal), ZERO)
    accrual_start = ordered[-1].date if ordered else loan.start_date
    if payment_date < accrual_start:
        raise ConfigurationError(
            f"Payment date {payment_date} is before the last accrual date {accrual_start}"
        )

    accrued = accrued_interest(
        balance_before, accrual_start, payment_date, loan.rate_schedule, loan.start_date
    )
    interest, principal = split_payment(amount, accrued)
    return PaymentSplit(
        amount=amount,
        interest_portion=interest,
        principal_portion=principal,
        accrued_interest=accrued,
        balance_before=balance_before,
        accrual_start=accrual_start,
    )


def remaining_balance(
    principal: Number,
    total_months: int,
    schedule: ScheduleLike,
    start_date: date,
    payments: Iterable[Any] = (),
    fixed_payment: Optional[Number] = None,
    monthly_fee: Number = ZERO,
) -> Decimal:
    """Return the ending balance of the last projected month."""
    entries = project(principal, total_months, schedule, start_date, payments, fixed_payment, monthly_fee)
    return entries[-1].ending_balance


def total_interest(
    principal: Number,
    total_months: int,
    schedule: ScheduleLike,
    start_date: date,
    payments: Iterable[Any] = (),
    fixed_payment: Optional[Number] = None,
    monthly_fee: Number = ZERO,
) -> Decimal:
    """Return the interest summed over every projected month."""
    entries = project(principal, total_months, schedule, start_date, payments, fixed_payment, monthly_fee)
    return sum((e.interest for e in entries), ZERO)


def summarize(schedule: Sequence[ScheduleEntry], principal: Number) -> Dict[str, Any]:
    """Aggregate metrics for a projected schedule.

    All figures come from ``schedule`` itself, so they match the table shown
    next to them.
    """
    principal = round2(principal)
    interest = sum((e.interest for e in schedule), ZERO)
    fees = sum((e.fee for e in schedule), ZERO)
    return {
        "principal": principal,
        "total_interest": interest,
        "total_fees": fees,
        "total_principal": sum((e.principal for e in schedule), ZERO),
        "total_paid": sum((e.payment for e in schedule), ZERO),
        "total_cost": principal + interest + fees,
        "remaining_balance": schedule[-1].ending_balance if schedule else principal,
        "payments_made": sum(1 for e in schedule if e.is_paid),
        "months": len(schedule),
        "end_date": schedule[-1].date.isoformat() if schedule else None,
    }


def summary_to_json(summary: Mapping[str, Any]) -> Dict[str, Any]:
    """Render Decimal amounts in a summary as 2-dp strings."""
    return {k: f"{v:.2f}" if isinstance(v, Decimal) else v for k, v in summary.items()}
