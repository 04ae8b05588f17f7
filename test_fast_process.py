from datetime import date, time
from decimal import Decimal

import pytest

from conftest import TODAY
from tutoring_cli.commands.attend.attendance import is_present
from tutoring_cli.commands.enroll import fast_process as fast_process_module
from tutoring_cli.commands.enroll.fast_process import (
    FastRegistrationEntry,
    fast_process,
    fast_register,
)
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.commands.pay.payments import paid_this_month, record_payment
from tutoring_cli.errors import PartialBatchFailure
from tutoring_cli.models import PaymentRecord


@pytest.fixture
def two_classes_today(db, student, make_booking):
    morning = make_booking(start_time=time(16, 0))
    evening = make_booking(start_time=time(18, 0), fee="300")
    first = register(db, student.id, morning.id, registration_date=date(2025, 1, 1))
    second = register(db, student.id, evening.id, registration_date=date(2025, 1, 1))
    return first, second


def test_fast_process_marks_attendance_and_collects_fee(db, student, two_classes_today):
    first, second = two_classes_today

    report = fast_process(db, student.id, TODAY)

    assert report.summary() == "2 of 2 succeeded"
    assert [o.registration_id for o in report.outcomes] == [first.id, second.id]
    assert [o.payment_amount for o in report.outcomes] == [
        Decimal("200.00"),
        Decimal("300.00"),
    ]
    assert is_present(db, first.id, TODAY)
    assert paid_this_month(db, second.id, 1, 2025) == Decimal("300.00")


def test_payment_failure_is_isolated(db, student, two_classes_today, monkeypatch):
    first, second = two_classes_today
    real_record_payment = fast_process_module.record_payment

    def failing_for_second(db, registration_id, *args, **kwargs):
        if registration_id == second.id:
            raise RuntimeError("payment service unavailable")
        return real_record_payment(db, registration_id, *args, **kwargs)

    monkeypatch.setattr(fast_process_module, "record_payment", failing_for_second)

    report = fast_process(db, student.id, TODAY)

    ok, failed = report.outcomes
    assert ok.succeeded and ok.attendance_marked and ok.payment_id
    assert failed.attendance_marked
    assert not failed.succeeded
    assert "unavailable" in failed.payment_error
    assert is_present(db, first.id, TODAY)
    assert is_present(db, second.id, TODAY)
    assert report.summary() == "1 of 2 succeeded"

    with pytest.raises(PartialBatchFailure) as exc:
        report.raise_for_failures()
    assert exc.value.report is report
    assert exc.value.failed == 1


def test_attendance_failure_still_collects_payment(
    db, student, two_classes_today, monkeypatch
):
    first, second = two_classes_today
    real_mark_attendance = fast_process_module.mark_attendance

    def failing_for_first(db, registration_id, *args, **kwargs):
        if registration_id == first.id:
            raise RuntimeError("attendance table locked")
        return real_mark_attendance(db, registration_id, *args, **kwargs)

    monkeypatch.setattr(fast_process_module, "mark_attendance", failing_for_first)

    report = fast_process(db, student.id, TODAY)

    failed, ok = report.outcomes
    assert not failed.attendance_marked
    assert "locked" in failed.attendance_error
    assert failed.payment_id is not None
    assert failed.payment_error is None
    assert not is_present(db, first.id, TODAY)
    assert paid_this_month(db, first.id, 1, 2025) == Decimal("200.00")

    assert ok.succeeded and ok.attendance_marked and ok.payment_id
    assert is_present(db, second.id, TODAY)
    assert report.summary() == "1 of 2 succeeded"


def test_already_paid_this_month_is_not_charged_again(db, student, two_classes_today):
    first, _ = two_classes_today
    record_payment(db, first.id, "50", payment_date=date(2025, 1, 2))

    report = fast_process(db, student.id, TODAY)

    assert report.outcomes[0].payment_skipped_reason == "already paid this month"
    assert db.query(PaymentRecord).filter_by(registration_id=first.id).count() == 1


def test_only_classes_held_today_are_processed(db, student, make_booking):
    thursday = make_booking(days=("thursday",))
    ended = make_booking(
        start_time=time(10, 0), start_date=date(2024, 9, 1), end_date=date(2024, 12, 31)
    )
    register(db, student.id, thursday.id)
    register(db, student.id, ended.id)

    report = fast_process(db, student.id, TODAY)

    assert report.outcomes == []


def test_zero_fee_skips_payment(db, student, make_booking):
    free = make_booking(fee="0")
    register(db, student.id, free.id)

    report = fast_process(db, student.id, TODAY)

    assert report.outcomes[0].payment_skipped_reason == "no fee"
    assert report.outcomes[0].succeeded


def test_fast_register_reports_per_booking(db, student, make_booking):
    first = make_booking(start_time=time(16, 0))
    second = make_booking(start_time=time(18, 0))
    register(db, student.id, second.id)

    outcomes = fast_register(
        db,
        student.id,
        [
            FastRegistrationEntry(booking_id=first.id, paid_amount=Decimal("100")),
            FastRegistrationEntry(booking_id=second.id),
            FastRegistrationEntry(booking_id="missing"),
        ],
        today=TODAY,
    )

    assert [o.succeeded for o in outcomes] == [True, False, False]
    assert outcomes[0].payment_id is not None
    assert "already registered" in outcomes[1].error
