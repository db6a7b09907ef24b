"""Output helpers for the loan engine command line.

This module provides simple functions to render amortization schedules and
summaries in a tabular text format. Output goes through ``click.echo`` so it
behaves under ``CliRunner`` and on pipes.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

import click

from .data_models import ScheduleEntry


def print_summary(summary: Dict[str, Any], currency: str = "") -> None:
    """Print a summary of loan metrics in a human-readable format."""
    suffix = f" {currency}" if currency else ""
    click.echo("Summary")
    click.echo("-" * 72)
    click.echo(f"Principal          : {summary['principal']:.2f}{suffix}")
    click.echo(f"Total interest     : {summary['total_interest']:.2f}{suffix}")
    if summary.get("total_fees"):
        click.echo(f"Total fees         : {summary['total_fees']:.2f}{suffix}")
    click.echo(f"Total cost         : {summary['total_cost']:.2f}{suffix}")
    click.echo(f"Remaining balance  : {summary['remaining_balance']:.2f}{suffix}")
    click.echo(f"Months projected   : {summary['months']}")
    click.echo(f"Payments made      : {summary['payments_made']}")
    if summary.get("end_date"):
        click.echo(f"End date           : {summary['end_date']}")
    click.echo("-" * 72)


def print_schedule(schedule: Iterable[ScheduleEntry], show_fee: bool = False) -> None:
    """Print the amortization schedule as a simple table.

    Parameters
    ----------
    schedule: Iterable[ScheduleEntry]
        The schedule entries to print.
    show_fee: bool
        Whether to include the ``Fee`` column. Hidden by default because most
        loans carry no monthly fee.
    """
    headers = ["Month", "Date", "StartBal", "Payment", "Principal", "Interest"]
    if show_fee:
        headers.append("Fee")
    headers += ["EndBal", "Paid"]
    click.echo("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.month),
            entry.date.isoformat(),
            f"{entry.beginning_balance:.2f}",
            f"{entry.payment:.2f}",
            f"{entry.principal:.2f}",
            f"{entry.interest:.2f}",
        ]
        if show_fee:
            row.append(f"{entry.fee:.2f}")
        row.append(f"{entry.ending_balance:.2f}")
        row.append("Yes" if entry.is_paid else "No")
        click.echo("\t".join(row))

