from __future__ import annotations

import logging
import os
from uuid import uuid4

from flask import Blueprint, Flask, current_app, jsonify, request, session

from loan_engine.data_models import Loan, LoanPayment
from loan_engine.engine import project_loan, summarize, summary_to_json
from loan_engine.errors import ConfigurationError
from loan_engine.logging_config import configure_logging
from loan_engine.rates import (
    as_whole_number,
    parse_rate_schedule,
    schedule_to_json,
    validate_schedule_covers,
)
from loan_engine.utils import decimal_from_str, parse_date
from loan_engine_web.loan_store import LoanStore, RecordNotFound, create_store_from_env

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def _store() -> LoanStore:
    return current_app.extensions["loan_store"]


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError("Request body must be a JSON object")
    return payload


def _required(payload: dict, *names: str) -> None:
    missing = [n for n in names if payload.get(n) in (None, "")]
    if missing:
        raise ConfigurationError(f"Missing required fields: {', '.join(missing)}")


def _payload_to_loan(payload: dict) -> Loan:
    # older clients send the schedule as ``interestRateYears``
    schedule_raw = payload.get("interestRateSchedule", payload.get("interestRateYears"))
    _required(payload, "name", "principal", "currency", "totalMonths", "startDate")
    if schedule_raw in (None, "", []):
        raise ConfigurationError("Missing required fields: interestRateSchedule")
    total_months = as_whole_number(payload["totalMonths"], "totalMonths")
    schedule = parse_rate_schedule(schedule_raw)
    validate_schedule_covers(schedule, total_months)
    loan = Loan(
        name=str(payload["name"]),
        principal=decimal_from_str(str(payload["principal"])),
        currency=str(payload["currency"]).upper(),
        total_months=total_months,
        rate_schedule=schedule,
        start_date=parse_date(payload["startDate"]),
        monthly_fee=decimal_from_str(str(payload.get("monthlyFee") or "0")),
    )
    return loan.validate()


def _serialize_payment(payment: LoanPayment) -> dict:
    return {
        "id": payment.id,
        "loanId": payment.loan_id,
        "amount": f"{payment.amount:.2f}",
        "date": payment.date.isoformat(),
        "principalPortion": f"{payment.principal_portion:.2f}",
        "interestPortion": f"{payment.interest_portion:.2f}",
        "transactionId": payment.transaction_id,
    }


def _serialize_loan(loan: Loan, payments: list) -> dict:
    schedule = project_loan(loan, payments)
    return {
        "id": loan.id,
        "name": loan.name,
        "principal": f"{loan.principal:.2f}",
        "currency": loan.currency,
        "totalMonths": loan.total_months,
        "interestRateSchedule": schedule_to_json(loan.rate_schedule),
        "startDate": loan.start_date.isoformat(),
        "monthlyFee": f"{loan.monthly_fee:.2f}",
        "remainingBalance": f"{schedule[-1].ending_balance:.2f}",
        # newest first, as the loan screens list them
        "payments": [_serialize_payment(p) for p in sorted(payments, key=lambda p: p.date, reverse=True)],
    }


@api.errorhandler(ConfigurationError)
def _bad_request(exc):
    logger.warning("Rejected %s %s: %s", request.method, request.path, exc)
    return jsonify({"error": str(exc)}), 400


@api.errorhandler(RecordNotFound)
def _not_found(exc):
    return jsonify({"error": str(exc)}), 404


@api.get("/loans")
def list_loans():
    user_token = _ensure_user_token()
    store = _store()
    loans = [
        _serialize_loan(loan, store.list_payments(user_token, loan.id))
        for loan in store.list_loans(user_token)
    ]
    return jsonify(loans)


@api.post("/loans")
def create_loan():
    user_token = _ensure_user_token()
    loan = _store().create_loan(user_token, _payload_to_loan(_json_object()))
    return jsonify(_serialize_loan(loan, [])), 201


@api.get("/loans/<loan_id>")
def get_loan(loan_id):
    user_token = _ensure_user_token()
    store = _store()
    loan = store.get_loan(user_token, loan_id)
    return jsonify(_serialize_loan(loan, store.list_payments(user_token, loan_id)))


@api.delete("/loans/<loan_id>")
def delete_loan(loan_id):
    _store().delete_loan(_ensure_user_token(), loan_id)
    return jsonify({"success": True})


@api.get("/loans/<loan_id>/schedule")
def loan_schedule(loan_id):
    """Regenerate the projected schedule from the loan and its recorded payments."""
    user_token = _ensure_user_token()
    store = _store()
    loan = store.get_loan(user_token, loan_id)
    schedule = project_loan(loan, store.list_payments(user_token, loan_id))
    return jsonify(
        {
            "schedule": [entry.to_dict() for entry in schedule],
            "summary": summary_to_json(summarize(schedule, loan.principal)),
        }
    )


@api.post("/loan-payments")
def create_loan_payment():
    user_token = _ensure_user_token()
    payload = _json_object()
    _required(payload, "loanId", "amount", "date")
    payment = _store().record_payment(
        user_token,
        payload["loanId"],
        decimal_from_str(str(payload["amount"])),
        parse_date(payload["date"]),
        transaction_id=payload.get("transactionId"),
    )
    return jsonify({"loanPayment": _serialize_payment(payment)}), 201


@api.delete("/loan-payments/<payment_id>")
def delete_loan_payment(payment_id):
    payment = _store().delete_payment(_ensure_user_token(), payment_id)
    return jsonify({"success": True, "transactionId": payment.transaction_id})


def _internal_error(exc):
    logger.exception("Unhandled error on %s %s", request.method, request.path, exc_info=exc.original_exception)
    return jsonify({"error": "Internal server error"}), 500


def create_app(database_url: str | None = None) -> Flask:
    configure_logging()
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    app.extensions["loan_store"] = create_store_from_env(database_url or os.environ.get("LOAN_DATABASE_URL"))
    app.register_blueprint(api)
    app.register_error_handler(500, _internal_error)
    return app


if __name__ == "__main__":
    print("Starting loan engine API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
