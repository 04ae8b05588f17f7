import pytest
from click.testing import CliRunner

from conftest import TODAY
from tutoring_cli import main
from tutoring_cli.main import cli
from tutoring_cli.models import Booking, DailySettlement, StudentRegistration


@pytest.fixture
def runner(db, monkeypatch):
    monkeypatch.setattr(main, "get_db", lambda: db)
    return CliRunner()


def test_cli_loads(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for group in ("booking", "enroll", "pay", "attend", "fees", "settle", "approve"):
        assert group in result.output


def test_booking_create_and_list(runner, db, hall, teacher, stage):
    args = [
        "booking", "create",
        "--hall", hall.id,
        "--teacher", teacher.id,
        "--stage", stage.id,
        "--day", "sunday",
        "--day", "wednesday",
        "--start-time", "16:00",
        "--start-date", "2025-01-01",
    ]
    result = runner.invoke(cli, args)
    assert result.exit_code == 0, result.output
    assert "T07-SUWE-1600" in result.output

    conflict = runner.invoke(cli, args)
    assert conflict.exit_code == 1
    assert "already booked" in conflict.output
    assert db.query(Booking).count() == 1

    listing = runner.invoke(cli, ["booking", "list", "--month", "1", "--year", "2025"])
    assert "T07-SUWE-1600" in listing.output
    assert "0 students" in listing.output


def test_enroll_and_pay(runner, db, student, booking):
    result = runner.invoke(cli, ["enroll", "add", student.serial_number, booking.id])
    assert result.exit_code == 0, result.output
    registration = db.query(StudentRegistration).one()

    result = runner.invoke(
        cli, ["pay", "record", registration.id, "50", "--date", TODAY.isoformat()]
    )
    assert result.exit_code == 0, result.output
    assert "(partial)" in result.output

    result = runner.invoke(cli, ["pay", "record", registration.id, "0"])
    assert result.exit_code == 1


def test_settlement_workflow(runner, db, make_user):
    clerk = make_user("read_only")
    manager = make_user("manager")

    denied = runner.invoke(cli, ["settle", "expense", "--as", clerk.id, "40", "cleaning"])
    assert denied.exit_code == 1
    assert db.query(DailySettlement).count() == 0

    recorded = runner.invoke(
        cli,
        ["settle", "income", "--as", manager.id, "500", "--source", "Book sales",
         "--date", TODAY.isoformat()],
    )
    assert recorded.exit_code == 0, recorded.output

    summary = runner.invoke(cli, ["settle", "summary", "--date", TODAY.isoformat()])
    assert "500.00" in summary.output


def test_delete_needs_confirmation(runner, db, booking):
    aborted = runner.invoke(cli, ["booking", "delete", booking.id], input="n\n")

    assert aborted.exit_code == 1
    assert db.query(Booking).count() == 1

    confirmed = runner.invoke(cli, ["booking", "delete", booking.id, "--yes"])
    assert confirmed.exit_code == 0, confirmed.output
    assert db.query(Booking).count() == 0


def test_report_commands(runner, db, student, booking, registration):
    runner.invoke(cli, ["pay", "record", registration.id, "50"])

    classes = runner.invoke(cli, ["report", "classes"])
    assert classes.exit_code == 0, classes.output
    assert booking.class_code in classes.output
    assert "outstanding 150.00" in classes.output
    assert "(25.0%)" in classes.output

    owing = runner.invoke(cli, ["report", "outstanding"])
    assert owing.exit_code == 0, owing.output
    assert student.serial_number in owing.output
    assert "owes 150.00" in owing.output
    assert "1 registrations owing in total" in owing.output
