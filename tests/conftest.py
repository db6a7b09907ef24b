from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from loan_engine.data_models import Loan, MonthlyRate, RateSchedule


@pytest.fixture
def flat_12() -> RateSchedule:
    return RateSchedule.flat(Decimal("12"))


@pytest.fixture
def two_tier() -> RateSchedule:
    return RateSchedule((MonthlyRate(0, 11, Decimal("5")), MonthlyRate(12, None, Decimal("8"))))


@pytest.fixture
def loan(flat_12: RateSchedule) -> Loan:
    return Loan(
        name="Car",
        principal=Decimal("10000"),
        total_months=12,
        rate_schedule=flat_12,
        start_date=date(2024, 1, 1),
    )
