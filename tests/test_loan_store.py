from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from loan_engine.data_models import Loan
from loan_engine.errors import ConfigurationError
from loan_engine_web.loan_store import LoanStore, RecordNotFound

USER = "user-a"


@pytest.fixture
def store(tmp_path: Path) -> LoanStore:
    return LoanStore(f"sqlite:///{tmp_path / 'loans.sqlite3'}")


def test_loan_round_trip(store: LoanStore, two_tier) -> None:
    created = store.create_loan(USER, Loan("House", Decimal("250000.5"), 360, two_tier, date(2024, 1, 1)))
    fetched = store.get_loan(USER, created.id)
    assert fetched.principal == Decimal("250000.50")
    assert fetched.rate_schedule == two_tier
    assert fetched.start_date == date(2024, 1, 1)
    assert [item.id for item in store.list_loans(USER)] == [created.id]


def test_loans_are_scoped_per_user(store: LoanStore, loan: Loan) -> None:
    created = store.create_loan(USER, loan)
    assert store.list_loans("user-b") == []
    with pytest.raises(RecordNotFound):
        store.get_loan("user-b", created.id)


def test_record_payment_stores_split(store: LoanStore, loan: Loan) -> None:
    created = store.create_loan(USER, loan)
    first = store.record_payment(USER, created.id, Decimal("1000"), date(2024, 2, 1), transaction_id="tx-1")
    second = store.record_payment(USER, created.id, Decimal("1000"), date(2024, 3, 1))

    assert (first.interest_portion, first.principal_portion) == (Decimal("100.00"), Decimal("900.00"))
    assert (second.interest_portion, second.principal_portion) == (Decimal("91.00"), Decimal("909.00"))
    payments = store.list_payments(USER, created.id)
    assert [p.date for p in payments] == [date(2024, 2, 1), date(2024, 3, 1)]
    assert payments[0].transaction_id == "tx-1"
    for p in payments:
        assert p.interest_portion + p.principal_portion == p.amount


def test_backdated_payment_is_not_stored(store: LoanStore, loan: Loan) -> None:
    created = store.create_loan(USER, loan)
    store.record_payment(USER, created.id, Decimal("1000"), date(2024, 2, 1))
    with pytest.raises(ConfigurationError):
        store.record_payment(USER, created.id, Decimal("1000"), date(2024, 1, 20))
    assert len(store.list_payments(USER, created.id)) == 1


def test_delete_payment_returns_linked_transaction(store: LoanStore, loan: Loan) -> None:
    created = store.create_loan(USER, loan)
    payment = store.record_payment(USER, created.id, Decimal("1000"), date(2024, 2, 1), transaction_id="tx-9")
    with pytest.raises(RecordNotFound):
        store.delete_payment("user-b", payment.id)
    deleted = store.delete_payment(USER, payment.id)
    assert deleted.transaction_id == "tx-9"
    assert store.list_payments(USER, created.id) == []


def test_delete_loan_cascades_to_payments(store: LoanStore, loan: Loan) -> None:
    created = store.create_loan(USER, loan)
    payment = store.record_payment(USER, created.id, Decimal("500"), date(2024, 2, 1))
    store.delete_loan(USER, created.id)
    with pytest.raises(RecordNotFound):
        store.get_loan(USER, created.id)
    with pytest.raises(RecordNotFound):
        store.delete_payment(USER, payment.id)


def test_invalid_loan_is_rejected(store: LoanStore, flat_12) -> None:
    with pytest.raises(ConfigurationError):
        store.create_loan(USER, Loan("Bad", Decimal("0"), 12, flat_12, date(2024, 1, 1)))
