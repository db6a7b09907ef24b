"""Command-line interface for the loan engine.

This module uses the ``click`` library to implement a multi-command
interface. Users can project a full amortization schedule reconciled against
recorded payments, view summary metrics, or compute the interest accrued
between two dates together with how a payment would be split. Schedules can be
printed to the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import click

from .data_models import LoanPayment, MonthlyRate, RateSchedule, ScheduleEntry, YearlyRate
from .engine import accrued_interest, project, split_payment, summarize, summary_to_json
from .errors import ConfigurationError
from .formatter import print_schedule, print_summary
from .logging_config import configure_logging
from .rates import validate_schedule_covers
from .utils import decimal_from_str, parse_date

logger = logging.getLogger(__name__)


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ConfigurationError:
        raise click.BadParameter(f"Invalid amount: {value}")


def _parse_date_option(value: str) -> date:
    try:
        return parse_date(value)
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc))


def parse_rate_period_strings(values: Tuple[str, ...]) -> List[MonthlyRate]:
    periods: List[MonthlyRate] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 3:
            raise click.BadParameter(
                f"Rate period must be in START:END:RATE format (END may be empty); got {item}"
            )
        start, end, rate = parts
        try:
            periods.append(
                MonthlyRate(
                    start_month=int(start),
                    end_month=int(end) if end.strip() else None,
                    rate=decimal_from_str(rate),
                )
            )
        except (ValueError, ConfigurationError) as exc:
            raise click.BadParameter(f"Invalid rate period {item}: {exc}")
    return periods


def parse_year_rate_strings(values: Tuple[str, ...]) -> List[YearlyRate]:
    periods: List[YearlyRate] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2:
            raise click.BadParameter(f"Year rate must be in YEARS:RATE format; got {item}")
        years, rate = parts
        try:
            periods.append(YearlyRate(years=int(years), rate=decimal_from_str(rate)))
        except (ValueError, ConfigurationError) as exc:
            raise click.BadParameter(f"Invalid year rate {item}: {exc}")
    return periods


def parse_payment_strings(values: Tuple[str, ...]) -> List[LoanPayment]:
    payments: List[LoanPayment] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2:
            raise click.BadParameter(f"Payment must be in YYYY-MM-DD:AMOUNT format; got {item}")
        payday, amount = parts
        payments.append(LoanPayment(amount=parse_amount(amount), date=_parse_date_option(payday)))
    return payments


def build_rate_schedule(
    rate: Optional[str], rate_period: Tuple[str, ...], year_rate: Tuple[str, ...]
) -> RateSchedule:
    """Build a rate schedule from exactly one of the three rate options."""
    given = [bool(rate), bool(rate_period), bool(year_rate)]
    if sum(given) != 1:
        raise click.UsageError("Give exactly one of --rate, --rate-period or --year-rate")
    try:
        if rate:
            return RateSchedule.flat(decimal_from_str(rate))
        if rate_period:
            return RateSchedule(tuple(parse_rate_period_strings(rate_period)))
        return RateSchedule(tuple(parse_year_rate_strings(year_rate)))
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc))


def rate_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option("--year-rate", "year_rate", multiple=True, help="Tier in YEARS:RATE format")(func)
    func = click.option(
        "--rate-period",
        "rate_period",
        multiple=True,
        help="Tier in START:END:RATE format (0-indexed months, END empty for open-ended)",
    )(func)
    func = click.option("--rate", "-r", "rate", help="Flat annual interest rate (percent)")(func)
    return func


def loan_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option("--fixed-payment", "fixed_payment", help="Pay this amount every month")(func)
    func = click.option("--fee", "fee", default="0", help="Monthly fee added to each payment")(func)
    func = click.option("--payment", "payment", multiple=True, help="Recorded payment in YYYY-MM-DD:AMOUNT format")(func)
    func = click.option("--start-date", "-s", "start_date", required=True, help="First month (YYYY-MM-DD)")(func)
    func = click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months")(func)
    func = click.option("--principal", "-p", "principal", required=True, help="Amount borrowed")(func)
    return rate_options(func)


def run_projection(
    principal: str,
    term: int,
    start_date: str,
    rate: Optional[str],
    rate_period: Tuple[str, ...],
    year_rate: Tuple[str, ...],
    payment: Tuple[str, ...],
    fee: str,
    fixed_payment: Optional[str],
) -> Tuple[List[ScheduleEntry], Dict[str, Any]]:
    principal_value = parse_amount(principal)
    schedule = build_rate_schedule(rate, rate_period, year_rate)
    try:
        validate_schedule_covers(schedule, term)
        entries = project(
            principal_value,
            term,
            schedule,
            _parse_date_option(start_date),
            parse_payment_strings(payment),
            fixed_payment=parse_amount(fixed_payment) if fixed_payment else None,
            monthly_fee=parse_amount(fee),
        )
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc))
    return entries, summarize(entries, principal_value)


def export_to_json(path: Path, schedule: List[ScheduleEntry], summary: Dict[str, Any]) -> None:
    """Export schedule and summary to a JSON file."""
    data = {"summary": summary_to_json(summary), "schedule": [e.to_dict() for e in schedule]}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, schedule: List[ScheduleEntry]) -> None:
    """Export schedule to a CSV file."""
    header = [
        "Month",
        "Date",
        "Beginning_Balance",
        "Payment",
        "Principal",
        "Interest",
        "Fee",
        "Ending_Balance",
        "Paid",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in schedule:
            writer.writerow(
                [
                    e.month,
                    e.date.isoformat(),
                    f"{e.beginning_balance:.2f}",
                    f"{e.payment:.2f}",
                    f"{e.principal:.2f}",
                    f"{e.interest:.2f}",
                    f"{e.fee:.2f}",
                    f"{e.ending_balance:.2f}",
                    e.is_paid,
                ]
            )


@click.group()
@click.option("--log-level", "log_level", default=None, help="Logging level (default: $LOAN_ENGINE_LOG_LEVEL or INFO)")
def cli(log_level: Optional[str]) -> None:
    """Loan amortization and payment-allocation engine."""
    configure_logging(level=log_level)


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(
    principal: str,
    term: int,
    start_date: str,
    payment: Tuple[str, ...],
    fee: str,
    fixed_payment: Optional[str],
    rate: Optional[str],
    rate_period: Tuple[str, ...],
    year_rate: Tuple[str, ...],
    output: Optional[str],
) -> None:
    """Project and print the full amortization schedule."""
    entries, summary_data = run_projection(
        principal, term, start_date, rate, rate_period, year_rate, payment, fee, fixed_payment
    )
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, entries, summary_data)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, entries)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        logger.info("Exported %d schedule row(s) to %s", len(entries), path)
        click.echo(f"Schedule exported to {path}")
        return
    print_summary(summary_data)
    print_schedule(entries, show_fee=summary_data["total_fees"] > 0)


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(
    principal: str,
    term: int,
    start_date: str,
    payment: Tuple[str, ...],
    fee: str,
    fixed_payment: Optional[str],
    rate: Optional[str],
    rate_period: Tuple[str, ...],
    year_rate: Tuple[str, ...],
    output: Optional[str],
) -> None:
    """Print only the summary metrics for a loan."""
    _, summary_data = run_projection(
        principal, term, start_date, rate, rate_period, year_rate, payment, fee, fixed_payment
    )
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": summary_to_json(summary_data)}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data)


@cli.command()
@rate_options
@click.option("--balance", "-b", "balance", required=True, help="Outstanding balance")
@click.option("--from", "from_date", required=True, help="Accrual start (YYYY-MM-DD, inclusive)")
@click.option("--to", "to_date", required=True, help="Accrual end (YYYY-MM-DD, exclusive)")
@click.option("--loan-start", "loan_start", required=True, help="Loan start date (YYYY-MM-DD)")
@click.option("--amount", "amount", help="Split a payment of this amount")
def accrue(
    rate: Optional[str],
    rate_period: Tuple[str, ...],
    year_rate: Tuple[str, ...],
    balance: str,
    from_date: str,
    to_date: str,
    loan_start: str,
    amount: Optional[str],
) -> None:
    """Compute interest accrued between two dates.

    With ``--amount`` the payment is also split into its interest and
    principal portions, interest first.
    """
    schedule_value = build_rate_schedule(rate, rate_period, year_rate)
    try:
        interest = accrued_interest(
            parse_amount(balance),
            _parse_date_option(from_date),
            _parse_date_option(to_date),
            schedule_value,
            _parse_date_option(loan_start),
        )
        click.echo(f"Accrued interest   : {interest:.2f}")
        if amount:
            interest_portion, principal_portion = split_payment(parse_amount(amount), interest)
            click.echo(f"  to interest      : {interest_portion:.2f}")
            click.echo(f"  to principal     : {principal_portion:.2f}")
    except ConfigurationError as exc:
        raise click.BadParameter(str(exc))


if __name__ == "__main__":
    cli()
