# Overview: Pytest coverage for the billing CLI command group.

from datetime import datetime

from billing.models import Bill, Business


def test_init_business(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["billing", "init-business", "--name", "Corner Store", "--code", "CORNER"])
    assert result.exit_code == 0
    assert "PASS Created business" in result.output
    assert db_session.query(Business).filter_by(code="CORNER").count() == 1

    again = runner.invoke(args=["billing", "init-business", "--name", "Corner Store", "--code", "CORNER"])
    assert "already exists" in again.output
    assert db_session.query(Business).filter_by(code="CORNER").count() == 1


def test_mark_overdue(app, db_session, business, make_bill):
    bill = make_bill(1000, due_date=datetime(2025, 1, 31))

    result = app.test_cli_runner().invoke(
        args=["billing", "mark-overdue", "--business-id", str(business.id), "--as-of", "2025-02-10"]
    )

    assert result.exit_code == 0
    assert "Marked 1 bill(s) overdue" in result.output
    db_session.expire_all()
    assert db_session.get(Bill, bill.id).status == "OVERDUE"


def test_mark_overdue_bad_date(app, db_session, business):
    result = app.test_cli_runner().invoke(
        args=["billing", "mark-overdue", "--business-id", str(business.id), "--as-of", "10/02/2025"]
    )

    assert result.exit_code == 1
    assert "as_of must be an ISO-8601 date or datetime" in result.output


def test_verify(app, db_session, business, make_bill):
    bill = make_bill(1000)
    runner = app.test_cli_runner()

    clean = runner.invoke(args=["billing", "verify", "--business-id", str(business.id)])
    assert clean.exit_code == 0
    assert "PASS" in clean.output

    db_session.query(Bill).filter_by(id=bill.id).update({"balance_cents": 5}, synchronize_session=False)
    db_session.commit()

    broken = runner.invoke(args=["billing", "verify", "--business-id", str(business.id)])
    assert broken.exit_code != 0
    assert f"FAIL bill {bill.id}" in broken.output
