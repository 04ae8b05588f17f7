from datetime import date, time
from decimal import Decimal

import pytest

from conftest import TODAY
from tutoring_cli.commands.attend.attendance import mark_attendance
from tutoring_cli.commands.booking.catalog import (
    apply_booking_fee,
    count_registrations_by_booking,
    delete_booking,
    effective_fee,
    is_live_in_month,
    list_live_for_month,
    set_booking_status,
    set_custom_fee,
    update_booking_schedule,
    update_fee,
)
from tutoring_cli.commands.booking.conflicts import (
    date_ranges_overlap,
    find_conflicts,
    time_windows_overlap,
)
from tutoring_cli.commands.create.reference import create_hall
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.commands.pay.payments import record_payment
from tutoring_cli.errors import BookingConflict, NotFound, ValidationError
from tutoring_cli.models import AttendanceRecord, PaymentRecord, StudentRegistration


def test_create_booking_generates_class_code_and_orders_days(make_booking):
    booking = make_booking(days=("tuesday", "sunday"))

    assert booking.days_of_week == ["sunday", "tuesday"]
    assert booking.class_code == "T07-SUTU-1600"
    assert booking.status == "active"
    assert booking.fee is None


def test_effective_fee_falls_back_to_teacher_default(make_booking):
    assert effective_fee(make_booking()) == Decimal("200.00")
    assert effective_fee(make_booking(start_time=time(18, 0), fee="150")) == Decimal(
        "150.00"
    )


def test_create_booking_validates_input(make_booking):
    with pytest.raises(ValidationError):
        make_booking(days=())
    with pytest.raises(ValidationError):
        make_booking(days=("funday",))
    with pytest.raises(ValidationError):
        make_booking(fee="-5")
    with pytest.raises(ValidationError):
        make_booking(start_date=date(2025, 2, 1), end_date=date(2025, 1, 1))


def test_class_may_not_run_past_midnight(db, make_booking):
    with pytest.raises(ValidationError):
        make_booking(start_time=time(23, 30), duration_minutes=90)

    late = make_booking(start_time=time(22, 30), duration_minutes=90)
    with pytest.raises(ValidationError):
        update_booking_schedule(db, late.id, duration_minutes=120)


def test_create_booking_unknown_hall(make_booking):
    with pytest.raises(NotFound):
        make_booking(hall_id="missing")


def test_overlapping_booking_in_same_hall_is_rejected(make_booking):
    first = make_booking(days=("sunday", "wednesday"), start_time=time(16, 0))

    with pytest.raises(BookingConflict) as exc:
        make_booking(days=("wednesday",), start_time=time(17, 0))

    assert exc.value.conflicts == [first]
    assert first.class_code in str(exc.value)


def test_non_overlapping_bookings_are_allowed(db, make_booking):
    make_booking(days=("wednesday",), start_time=time(16, 0), end_date=date(2025, 3, 31))

    # back to back
    make_booking(days=("wednesday",), start_time=time(17, 30))
    # different day
    make_booking(days=("thursday",), start_time=time(16, 0))
    # later date range
    make_booking(days=("wednesday",), start_time=time(16, 0), start_date=date(2025, 4, 1))
    # different hall
    other = create_hall(db, "Hall B")
    make_booking(days=("wednesday",), start_time=time(16, 0), hall_id=other.id)


def test_cancelled_bookings_do_not_conflict(db, make_booking):
    first = make_booking()
    set_booking_status(db, first.id, "cancelled")

    second = make_booking()

    assert second.id != first.id
    with pytest.raises(BookingConflict):
        set_booking_status(db, first.id, "active")


def test_overlap_helpers():
    assert time_windows_overlap(time(16, 0), 90, time(17, 0), 60)
    assert not time_windows_overlap(time(16, 0), 60, time(17, 0), 60)
    assert date_ranges_overlap(date(2025, 1, 1), None, date(2030, 1, 1), None)
    assert not date_ranges_overlap(
        date(2025, 1, 1), date(2025, 1, 31), date(2025, 2, 1), None
    )


def test_reschedule_excludes_itself_but_checks_others(db, make_booking):
    first = make_booking(start_time=time(16, 0))
    second = make_booking(start_time=time(18, 0))

    moved = update_booking_schedule(db, first.id, start_time=time(16, 30))
    assert moved.start_time == time(16, 30)
    assert moved.class_code.endswith("-1630")

    with pytest.raises(BookingConflict):
        update_booking_schedule(db, first.id, start_time=time(18, 30))

    assert find_conflicts(
        db, second.hall_id, ["wednesday"], time(18, 0), 90, TODAY,
        exclude_booking_id=second.id,
    ) == []


def test_live_for_month_with_batched_counts(db, make_booking, make_student):
    january_only = make_booking(
        start_time=time(10, 0), start_date=date(2025, 1, 1), end_date=date(2025, 1, 31)
    )
    open_ended = make_booking(start_time=time(12, 0))
    cancelled = make_booking(start_time=time(14, 0))
    set_booking_status(db, cancelled.id, "cancelled")

    for _ in range(2):
        register(db, make_student().id, open_ended.id)
    register(db, make_student().id, january_only.id)

    january = list_live_for_month(db, 1, 2025)
    assert [(b.id, count) for b, count in january] == [
        (january_only.id, 1),
        (open_ended.id, 2),
    ]

    february = list_live_for_month(db, 2, 2025)
    assert [b.id for b, _ in february] == [open_ended.id]
    assert not is_live_in_month(january_only, 2, 2025)
    assert count_registrations_by_booking(db, []) == {}


def test_apply_booking_fee_skips_overridden_registrations(db, booking, make_student):
    plain = register(db, make_student().id, booking.id)
    discounted = register(db, make_student().id, booking.id, total_fees="120")
    record_payment(db, plain.id, "200")

    update_fee(db, booking.id, "250")
    assert apply_booking_fee(db, booking.id) == 1

    db.refresh(plain)
    db.refresh(discounted)
    assert plain.total_fees == Decimal("250.00")
    assert plain.payment_status == "partial"
    assert discounted.total_fees == Decimal("120.00")


def test_custom_fee_flag(db, booking):
    updated = set_custom_fee(db, booking.id, "175")

    assert updated.is_custom_fee
    assert effective_fee(updated) == Decimal("175.00")


def test_delete_booking_cascades(db, booking, registration):
    record_payment(db, registration.id, "50", payment_date=TODAY)
    mark_attendance(db, registration.id, TODAY)

    removed = delete_booking(db, booking.id)

    assert removed == {"registrations": 1, "payments": 1, "attendance": 1}
    assert db.query(StudentRegistration).count() == 0
    assert db.query(PaymentRecord).count() == 0
    assert db.query(AttendanceRecord).count() == 0
