from datetime import time
from decimal import Decimal

import pytest

from tutoring_cli.commands.booking.catalog import effective_fee, set_custom_fee
from tutoring_cli.commands.create.reference import create_teacher
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.commands.pay.payments import record_payment
from tutoring_cli.commands.update import teacher_fee
from tutoring_cli.commands.update.teacher_fee import apply_teacher_default_fee
from tutoring_cli.errors import NotFound, ValidationError
from tutoring_cli.models import Booking, StudentRegistration, Teacher


@pytest.fixture
def three_bookings(db, make_booking, make_student):
    bookings = [
        make_booking(start_time=time(10, 0)),
        make_booking(start_time=time(12, 0)),
        make_booking(start_time=time(14, 0)),
    ]
    registrations = [register(db, make_student().id, b.id) for b in bookings]
    return bookings, registrations


def test_cascade_updates_only_selected_bookings(db, teacher, three_bookings):
    (b1, b2, b3), (r1, r2, r3) = three_bookings

    result = apply_teacher_default_fee(
        db, teacher.id, "250", [b1.id, b2.id], apply_to_current_month=True
    )

    assert result.bookings_updated == [b1.id, b2.id]
    assert result.previous_fees[b1.id] == Decimal("200.00")
    assert result.registrations_updated == 2

    db.expire_all()
    assert db.get(Booking, b1.id).fee == Decimal("250.00")
    assert db.get(Booking, b2.id).fee == Decimal("250.00")
    assert db.get(Booking, b3.id).fee == Decimal("200.00")
    assert result.pinned == [b3.id]
    assert db.get(StudentRegistration, r1.id).total_fees == Decimal("250.00")
    assert db.get(StudentRegistration, r2.id).total_fees == Decimal("250.00")
    assert db.get(StudentRegistration, r3.id).total_fees == Decimal("200.00")
    assert db.get(Teacher, teacher.id).default_class_fee == Decimal("250.00")


def test_cascade_without_current_month_leaves_registrations(db, teacher, three_bookings):
    (b1, _, _), (r1, _, _) = three_bookings

    result = apply_teacher_default_fee(db, teacher.id, "300", [b1.id])

    assert result.registrations_updated == 0
    db.expire_all()
    assert db.get(StudentRegistration, r1.id).total_fees == Decimal("200.00")


def test_cascade_skips_overrides_and_custom_bookings(
    db, teacher, make_booking, make_student
):
    regular = make_booking(start_time=time(10, 0))
    custom = make_booking(start_time=time(12, 0))
    set_custom_fee(db, custom.id, "180")
    discounted = register(db, make_student().id, regular.id, total_fees="150")
    paid_in_full = register(db, make_student().id, regular.id)
    record_payment(db, paid_in_full.id, "200")

    result = apply_teacher_default_fee(
        db, teacher.id, "250", [regular.id, custom.id], apply_to_current_month=True
    )

    assert result.skipped_custom == [custom.id]
    db.expire_all()
    assert db.get(Booking, custom.id).fee == Decimal("180.00")
    assert db.get(StudentRegistration, discounted.id).total_fees == Decimal("150.00")
    refreshed = db.get(StudentRegistration, paid_in_full.id)
    assert refreshed.total_fees == Decimal("250.00")
    assert refreshed.payment_status == "partial"


def test_cascade_rejects_foreign_and_unknown_bookings(db, teacher, three_bookings):
    (b1, _, _), _ = three_bookings
    other = create_teacher(db, "Other Teacher", teacher_code="T99")

    with pytest.raises(ValidationError):
        apply_teacher_default_fee(db, other.id, "100", [b1.id])
    with pytest.raises(NotFound):
        apply_teacher_default_fee(db, teacher.id, "100", [b1.id, "missing"])
    with pytest.raises(ValidationError):
        apply_teacher_default_fee(db, teacher.id, "-1", [b1.id])

    db.expire_all()
    assert db.get(Teacher, teacher.id).default_class_fee == Decimal("200.00")
    assert db.get(Booking, b1.id).fee is None


def test_cascade_is_all_or_nothing(db, teacher, three_bookings, monkeypatch):
    (b1, b2, _), (r1, _, _) = three_bookings

    def broken_refresh(db, registration):
        raise RuntimeError("database went away")

    monkeypatch.setattr(teacher_fee, "refresh_registration_totals", broken_refresh)

    with pytest.raises(RuntimeError):
        apply_teacher_default_fee(
            db, teacher.id, "275", [b1.id, b2.id], apply_to_current_month=True
        )

    db.expire_all()
    assert db.get(Teacher, teacher.id).default_class_fee == Decimal("200.00")
    assert db.get(Booking, b1.id).fee is None
    assert db.get(StudentRegistration, r1.id).total_fees == Decimal("200.00")


def test_unselected_bookings_keep_their_fee_after_default_changes(
    db, teacher, make_student, three_bookings
):
    (b1, _, b3), _ = three_bookings

    apply_teacher_default_fee(db, teacher.id, "250", [b1.id], apply_to_current_month=True)

    db.expire_all()
    assert effective_fee(db.get(Booking, b3.id)) == Decimal("200.00")
    assert effective_fee(db.get(Booking, b1.id)) == Decimal("250.00")

    latecomer = register(db, make_student().id, b3.id)
    assert latecomer.total_fees == Decimal("200.00")
    assert latecomer.fee_overridden is False
