# Overview: Pytest coverage for transaction scope and retry helpers.

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from billing import create_app
from billing.errors import ConcurrencyError
from billing.extensions import db
from billing.models import Bill, Business, Payment, PaymentAllocation
from billing.services import billing_service, ledger_state, payment_service
from billing.services.concurrency import run_with_retry, unit_of_work


def _locked():
    return OperationalError("UPDATE bills", {}, Exception("database is locked"))


def test_unit_of_work_commits(db_session):
    with unit_of_work() as session:
        session.add(Business(name="Committed", code="OK"))

    db_session.rollback()
    assert db_session.query(Business).filter_by(code="OK").count() == 1


def test_unit_of_work_rolls_back_on_error(db_session):
    with pytest.raises(ValueError):
        with unit_of_work() as session:
            session.add(Business(name="Doomed", code="NOPE"))
            session.flush()
            raise ValueError("boom")

    assert db_session.query(Business).filter_by(code="NOPE").count() == 0


def test_retry_succeeds_after_conflict(db_session):
    calls = []

    def op():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("version mismatch")
        return "done"

    assert run_with_retry(op, backoff_base=0) == "done"
    assert len(calls) == 2


def test_retry_exhausted_raises_concurrency_error(db_session):
    calls = []

    def op():
        calls.append(1)
        raise _locked()

    with pytest.raises(ConcurrencyError) as exc:
        run_with_retry(op, attempts=3, backoff_base=0)

    assert len(calls) == 3
    assert exc.value.code == "CONCURRENCY_CONFLICT"
    assert isinstance(exc.value.__cause__, OperationalError)


def test_other_errors_not_retried(db_session):
    calls = []

    def op():
        calls.append(1)
        raise KeyError("nope")

    with pytest.raises(KeyError):
        run_with_retry(op, backoff_base=0)
    assert len(calls) == 1


# -----------------------------------------------------------------------------
# Two sessions against one file-backed database
# -----------------------------------------------------------------------------

@pytest.fixture
def file_app(tmp_path):
    """App bound to an on-disk SQLite file so separate sessions see each other's commits."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'billing.db'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def open_bill(file_app):
    business = Business(name="Disk Traders", code="DISK", is_active=True)
    db.session.add(business)
    db.session.commit()
    bill = billing_service.create_bill(
        business.id, 1, {"items": [{"name": "Consulting", "quantity": 1, "rate_cents": 1000}]}
    )
    return business.id, bill.id


def _pay_in_other_session(bill_id, cents):
    with Session(db.engine) as other:
        bill = other.get(Bill, bill_id)
        ledger_state.apply_allocation(bill, cents)
        other.commit()


def test_stale_bill_write_raises_stale_data(open_bill):
    _, bill_id = open_bill
    stale = db.session.get(Bill, bill_id)
    assert stale.balance_cents == 1000

    _pay_in_other_session(bill_id, 400)

    ledger_state.apply_allocation(stale, 300)
    with pytest.raises(StaleDataError):
        db.session.commit()
    db.session.rollback()

    fresh = db.session.get(Bill, bill_id)
    assert fresh.paid_cents == 400
    assert fresh.paid_cents + fresh.balance_cents == fresh.total_cents
    assert fresh.version_id == 2


def test_payment_retried_after_concurrent_allocation(open_bill, monkeypatch, caplog):
    business_id, bill_id = open_bill
    calls = []
    real_next_number = payment_service.next_number

    def racing_next_number(session, **kwargs):
        # Another writer pays part of the bill after this attempt has read it
        calls.append(1)
        if len(calls) == 1:
            _pay_in_other_session(bill_id, 400)
        return real_next_number(session, **kwargs)

    monkeypatch.setattr(payment_service, "next_number", racing_next_number)

    result = payment_service.record_payment(business_id, 1, bill_id, 600, "CASH")

    assert len(calls) == 2
    assert "StaleDataError" in caplog.text

    bill = db.session.get(Bill, bill_id)
    assert bill.paid_cents == 1000
    assert bill.balance_cents == 0
    assert bill.status == "PAID"

    payment = result["payment"]
    assert payment.allocated_cents == 600
    assert payment.allocated_cents + payment.unallocated_cents == payment.amount_cents
    assert db.session.query(Payment).count() == 1
    assert db.session.query(PaymentAllocation).filter_by(bill_id=bill_id).count() == 1
