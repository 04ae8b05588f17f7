from datetime import date, timedelta

from conftest import TODAY
from tutoring_cli.commands.attend import attendance
from tutoring_cli.commands.attend.attendance import (
    attendance_dates,
    booking_roll_call,
    is_present,
    mark_attendance,
)
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.models import AttendanceRecord


def test_marking_twice_keeps_one_row(db, registration):
    first = mark_attendance(db, registration.id, TODAY)
    second = mark_attendance(db, registration.id, TODAY)

    assert first.id == second.id
    assert (
        db.query(AttendanceRecord)
        .filter_by(registration_id=registration.id, attendance_date=TODAY)
        .count()
        == 1
    )


def test_absence_is_derived(db, registration):
    mark_attendance(db, registration.id, TODAY)

    assert is_present(db, registration.id, TODAY)
    assert not is_present(db, registration.id, TODAY + timedelta(days=7))


def test_attendance_dates_newest_first(db, registration):
    for offset in (0, 7, 14):
        mark_attendance(db, registration.id, TODAY + timedelta(days=offset))

    assert attendance_dates(db, registration.id) == [
        TODAY + timedelta(days=14),
        TODAY + timedelta(days=7),
        TODAY,
    ]


def test_concurrent_insert_is_reread(db, registration, monkeypatch):
    """Another session inserting the same row first surfaces as the existing record."""
    winner = AttendanceRecord(registration_id=registration.id, attendance_date=TODAY)
    db.add(winner)
    db.commit()
    winner_id = winner.id

    calls = {"n": 0}
    real_find = attendance._find_attendance

    def stale_then_real(*args):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(*args)

    monkeypatch.setattr(attendance, "_find_attendance", stale_then_real)

    record = mark_attendance(db, registration.id, TODAY)

    assert record.id == winner_id
    assert db.query(AttendanceRecord).count() == 1


def test_roll_call_ignores_classes_before_enrollment(db, booking, make_student):
    early = register(
        db, make_student().id, booking.id, registration_date=date(2025, 1, 1)
    )
    absent = register(
        db, make_student().id, booking.id, registration_date=date(2025, 1, 8)
    )
    late = register(
        db, make_student().id, booking.id, registration_date=date(2025, 1, 20)
    )
    mark_attendance(db, early.id, TODAY)

    roll = booking_roll_call(db, booking.id, TODAY)

    assert [(r.id, present) for r, present in roll] == [
        (early.id, True),
        (absent.id, False),
    ]
    assert late.id not in [r.id for r, _ in roll]
