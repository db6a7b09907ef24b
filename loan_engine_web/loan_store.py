"""Persistence layer for loans and their payments.

This module keeps each user's loans and recorded payments in a relational
database. It defaults to SQLite for local development, but accepts any
SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL) for shared deployments.

Money is stored as fixed-point text so amounts survive a persistence round
trip to the cent. Recording a payment computes its interest/principal split
through the engine inside the same transaction that locks the loan row, so
two concurrent payments against one loan cannot both accrue against a stale
balance.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.types import TypeDecorator

from loan_engine.data_models import Loan, LoanPayment
from loan_engine.engine import allocate_payment
from loan_engine.rates import parse_rate_schedule, schedule_to_json
from loan_engine.utils import round2

logger = logging.getLogger(__name__)

Base = declarative_base()


class RecordNotFound(LookupError):
    """No loan or payment with that id belongs to the user."""


class Money(TypeDecorator):
    """A cent-precision amount stored as text."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(round2(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    user_token = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    principal = Column(Money, nullable=False)
    currency = Column(String(8), nullable=False)
    total_months = Column(Integer, nullable=False)
    interest_rate_schedule = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    monthly_fee = Column(Money, nullable=False, default=Decimal("0"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    payments = relationship(
        "LoanPaymentModel",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanPaymentModel.date",
    )


class LoanPaymentModel(Base):
    __tablename__ = "loan_payments"

    id = Column(String(64), primary_key=True)
    loan_id = Column(String(64), ForeignKey("loans.id", ondelete="CASCADE"), index=True, nullable=False)
    user_token = Column(String(64), index=True, nullable=False)
    amount = Column(Money, nullable=False)
    principal_portion = Column(Money, nullable=False)
    interest_portion = Column(Money, nullable=False)
    date = Column(Date, nullable=False)
    transaction_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    loan = relationship("LoanModel", back_populates="payments")


class LoanStore:
    """Database-backed store of loans and loan payments, scoped per user."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def create_loan(self, user_token: str, loan: Loan) -> Loan:
        loan.validate()
        row = LoanModel(
            id=uuid4().hex,
            user_token=user_token,
            name=loan.name,
            principal=loan.principal,
            currency=loan.currency,
            total_months=loan.total_months,
            interest_rate_schedule=json.dumps(schedule_to_json(loan.rate_schedule)),
            start_date=loan.start_date,
            monthly_fee=loan.monthly_fee,
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
        logger.info("Created loan %s (%s months)", row.id, row.total_months)
        return self._to_loan(row)

    def list_loans(self, user_token: str) -> List[Loan]:
        if not user_token:
            return []
        with self._session_factory() as session:
            rows = session.execute(
                select(LoanModel)
                .where(LoanModel.user_token == user_token)
                .order_by(LoanModel.created_at.asc())
            ).scalars()
            return [self._to_loan(row) for row in rows]

    def get_loan(self, user_token: str, loan_id: str) -> Loan:
        with self._session_factory() as session:
            return self._to_loan(self._loan_row(session, user_token, loan_id))

    def delete_loan(self, user_token: str, loan_id: str) -> None:
        """Delete a loan together with all of its payments."""
        with self._session_factory() as session:
            row = self._loan_row(session, user_token, loan_id)
            session.delete(row)
            session.commit()
        logger.info("Deleted loan %s", loan_id)

    def list_payments(self, user_token: str, loan_id: str) -> List[LoanPayment]:
        """Return the loan's payments ordered ascending by date."""
        with self._session_factory() as session:
            row = self._loan_row(session, user_token, loan_id)
            return [self._to_payment(p) for p in row.payments]

    def record_payment(
        self,
        user_token: str,
        loan_id: str,
        amount: Decimal,
        payment_date: date,
        transaction_id: Optional[str] = None,
    ) -> LoanPayment:
        """Persist a payment with its interest/principal split."""
        with self._session_factory() as session:
            row = self._loan_row(session, user_token, loan_id, for_update=True)
            prior = [self._to_payment(p) for p in row.payments]
            split = allocate_payment(self._to_loan(row), prior, amount, payment_date)
            payment_row = LoanPaymentModel(
                id=uuid4().hex,
                loan_id=row.id,
                user_token=user_token,
                amount=split.amount,
                principal_portion=split.principal_portion,
                interest_portion=split.interest_portion,
                date=payment_date,
                transaction_id=transaction_id,
            )
            session.add(payment_row)
            session.commit()
        logger.info(
            "Recorded payment %s on loan %s: %s interest, %s principal",
            payment_row.id,
            loan_id,
            split.interest_portion,
            split.principal_portion,
        )
        return self._to_payment(payment_row)

    def delete_payment(self, user_token: str, payment_id: str) -> LoanPayment:
        """Delete a payment and return it.

        The returned payment carries ``transaction_id`` so the caller can
        retract the ledger transaction created alongside it.
        """
        with self._session_factory() as session:
            row = session.get(LoanPaymentModel, payment_id)
            if row is None or row.user_token != user_token:
                raise RecordNotFound(f"Payment {payment_id} not found")
            payment = self._to_payment(row)
            session.delete(row)
            session.commit()
        logger.info("Deleted payment %s from loan %s", payment_id, payment.loan_id)
        return payment

    @staticmethod
    def _loan_row(session, user_token: str, loan_id: str, for_update: bool = False) -> LoanModel:
        query = select(LoanModel).where(LoanModel.id == loan_id, LoanModel.user_token == user_token)
        if for_update:
            query = query.with_for_update()
        row = session.execute(query).scalars().first()
        if row is None:
            raise RecordNotFound(f"Loan {loan_id} not found")
        return row

    @staticmethod
    def _to_loan(row: LoanModel) -> Loan:
        return Loan(
            id=row.id,
            name=row.name,
            principal=row.principal,
            currency=row.currency,
            total_months=row.total_months,
            rate_schedule=parse_rate_schedule(row.interest_rate_schedule),
            start_date=row.start_date,
            monthly_fee=row.monthly_fee,
        )

    @staticmethod
    def _to_payment(row: LoanPaymentModel) -> LoanPayment:
        return LoanPayment(
            id=row.id,
            loan_id=row.loan_id,
            amount=row.amount,
            date=row.date,
            principal_portion=row.principal_portion,
            interest_portion=row.interest_portion,
            transaction_id=row.transaction_id,
        )


def create_store_from_env(url: str | None) -> LoanStore:
    return LoanStore(url or "sqlite:///loans.sqlite3")
