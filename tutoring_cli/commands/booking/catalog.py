import os
from datetime import date, time
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tutoring_cli.commands.booking.conflicts import find_conflicts
from tutoring_cli.commands.pay.payments import refresh_registration_totals
from tutoring_cli.db.config import transaction
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import BookingConflict, ValidationError
from tutoring_cli.models import (
    AcademicStage,
    AttendanceRecord,
    Booking,
    Hall,
    PaymentRecord,
    StudentRegistration,
    Teacher,
)
from tutoring_cli.utils.dates import last_day_of_month, month_bounds, normalize_days
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import require_non_negative, to_decimal

logger = get_logger(__name__)

load_dotenv()

DEFAULT_DURATION_MINUTES = int(os.getenv("CLASS_DURATION_MINUTES", "90"))
BOOKING_STATUSES = ("active", "cancelled", "completed")
MINUTES_PER_DAY = 24 * 60

_UNSET = object()


def effective_fee(booking: Booking) -> Decimal:
    """The booking's own fee, else the teacher's default fee, else zero."""
    if booking.fee is not None:
        return to_decimal(booking.fee)
    if booking.teacher is not None and booking.teacher.default_class_fee is not None:
        return to_decimal(booking.teacher.default_class_fee)
    return Decimal("0.00")


def generate_class_code(teacher: Teacher, days: Iterable[str], start_time: time) -> str:
    """
    Build a readable class code such as ``T07-SUTU-1600``.

    Teacher code (or a prefix of the teacher id), the first two letters of
    each weekday and the start time.
    """
    prefix = teacher.teacher_code or teacher.id[:4].upper()
    day_part = "".join(d[:2].upper() for d in days)
    return f"{prefix}-{day_part}-{start_time.strftime('%H%M')}"


def is_live_in_month(booking: Booking, month: int, year: int) -> bool:
    first_day, _ = month_bounds(month, year)
    last_day = last_day_of_month(month, year)
    return (
        booking.status == "active"
        and booking.start_date <= last_day
        and (booking.end_date is None or booking.end_date >= first_day)
    )


def _validate_schedule(
    days: Iterable[str],
    start_time: time,
    duration_minutes: int,
    start_date: date,
    end_date: Optional[date],
) -> List[str]:
    normalized = normalize_days(days)
    if duration_minutes <= 0:
        raise ValidationError("Class duration must be greater than zero minutes")
    if start_time.hour * 60 + start_time.minute + duration_minutes > MINUTES_PER_DAY:
        raise ValidationError(
            f"A class starting at {start_time:%H:%M} for {duration_minutes} minutes runs past midnight"
        )
    if end_date is not None and end_date < start_date:
        raise ValidationError("End date cannot be before start date")
    return normalized


def create_booking(
    db: Session,
    hall_id: str,
    teacher_id: str,
    academic_stage_id: str,
    days: Iterable[str],
    start_time: time,
    start_date: date,
    end_date: Optional[date] = None,
    fee=None,
    duration_minutes: Optional[int] = None,
    created_by: Optional[str] = None,
) -> Booking:
    """
    Schedule a recurring class.

    Raises:
        NotFound: If the hall, teacher or academic stage does not exist
        ValidationError: For an empty day set, negative fee, inverted dates or
            a class running past midnight
        BookingConflict: If the hall is already taken at an overlapping slot
    """
    hall = get_or_raise(db, Hall, hall_id)
    teacher = get_or_raise(db, Teacher, teacher_id)
    get_or_raise(db, AcademicStage, academic_stage_id)

    duration = duration_minutes or DEFAULT_DURATION_MINUTES
    normalized_days = _validate_schedule(
        days, start_time, duration, start_date, end_date
    )
    booking_fee = require_non_negative(fee) if fee is not None else None

    conflicts = find_conflicts(
        db, hall.id, normalized_days, start_time, duration, start_date, end_date
    )
    if conflicts:
        logger.warning(
            f"Rejected booking in hall {hall.name}: conflicts with {[b.id for b in conflicts]}"
        )
        raise BookingConflict(conflicts)

    booking = Booking(
        hall_id=hall.id,
        teacher_id=teacher.id,
        academic_stage_id=academic_stage_id,
        days_of_week=normalized_days,
        start_time=start_time,
        duration_minutes=duration,
        start_date=start_date,
        end_date=end_date,
        fee=booking_fee,
        is_custom_fee=False,
        status="active",
        class_code=generate_class_code(teacher, normalized_days, start_time),
        created_by=created_by,
    )
    db.add(booking)
    db.commit()

    logger.info(
        f"Created booking {booking.id} ({booking.class_code}) in hall {hall.name}"
    )
    return booking


def update_booking_schedule(
    db: Session,
    booking_id: str,
    hall_id: Optional[str] = None,
    days: Optional[Iterable[str]] = None,
    start_time: Optional[time] = None,
    duration_minutes: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date=_UNSET,
) -> Booking:
    """Reschedule a booking, re-running the hall conflict check against every other booking."""
    booking = get_or_raise(db, Booking, booking_id)

    new_hall_id = booking.hall_id
    if hall_id is not None:
        new_hall_id = get_or_raise(db, Hall, hall_id).id
    new_days = list(days) if days is not None else booking.days_of_week
    new_start_time = start_time or booking.start_time
    new_duration = duration_minutes or booking.duration_minutes
    new_start_date = start_date or booking.start_date
    new_end_date = booking.end_date if end_date is _UNSET else end_date

    new_days = _validate_schedule(
        new_days, new_start_time, new_duration, new_start_date, new_end_date
    )

    if booking.status == "active":
        conflicts = find_conflicts(
            db,
            new_hall_id,
            new_days,
            new_start_time,
            new_duration,
            new_start_date,
            new_end_date,
            exclude_booking_id=booking.id,
        )
        if conflicts:
            raise BookingConflict(conflicts)

    booking.hall_id = new_hall_id
    booking.days_of_week = new_days
    booking.start_time = new_start_time
    booking.duration_minutes = new_duration
    booking.start_date = new_start_date
    booking.end_date = new_end_date
    booking.class_code = generate_class_code(booking.teacher, new_days, new_start_time)
    db.commit()

    logger.info(f"Rescheduled booking {booking.id} ({booking.class_code})")
    return booking


def update_fee(db: Session, booking_id: str, new_fee, commit: bool = True) -> Booking:
    """
    Set a booking's fee. ``None`` clears it so the teacher default applies.

    The fee cascade calls this with ``commit=False`` inside its own transaction.
    """
    booking = get_or_raise(db, Booking, booking_id)
    booking.fee = require_non_negative(new_fee) if new_fee is not None else None
    if commit:
        db.commit()
        logger.info(f"Updated fee of booking {booking_id} to {booking.fee}")
    return booking


def set_custom_fee(db: Session, booking_id: str, fee) -> Booking:
    """Pin a booking to its own fee so teacher fee changes skip it."""
    booking = get_or_raise(db, Booking, booking_id)
    booking.fee = require_non_negative(fee)
    booking.is_custom_fee = True
    db.commit()
    logger.info(f"Set custom fee {booking.fee} on booking {booking_id}")
    return booking


def apply_booking_fee(db: Session, booking_id: str) -> int:
    """
    Push the booking's effective fee to its registrations that were not given
    an individual fee, re-deriving each payment status.

    Returns:
        Number of registrations updated
    """
    booking = get_or_raise(db, Booking, booking_id)
    fee = effective_fee(booking)

    with transaction(db):
        registrations = (
            db.query(StudentRegistration)
            .filter(
                StudentRegistration.booking_id == booking.id,
                StudentRegistration.fee_overridden.is_(False),
            )
            .all()
        )
        for registration in registrations:
            registration.total_fees = fee
            refresh_registration_totals(db, registration)

    logger.info(
        f"Applied fee {fee} of booking {booking_id} to {len(registrations)} registrations"
    )
    return len(registrations)


def set_booking_status(db: Session, booking_id: str, status: str) -> Booking:
    if status not in BOOKING_STATUSES:
        raise ValidationError(
            f"Invalid booking status {status!r}, expected one of {', '.join(BOOKING_STATUSES)}"
        )
    booking = get_or_raise(db, Booking, booking_id)

    if status == "active" and booking.status != "active":
        conflicts = find_conflicts(
            db,
            booking.hall_id,
            booking.days_of_week,
            booking.start_time,
            booking.duration_minutes,
            booking.start_date,
            booking.end_date,
            exclude_booking_id=booking.id,
        )
        if conflicts:
            raise BookingConflict(conflicts)

    booking.status = status
    db.commit()
    logger.info(f"Booking {booking_id} is now {status}")
    return booking


def count_registrations_by_booking(
    db: Session, booking_ids: List[str]
) -> Dict[str, int]:
    """Registration counts for many bookings in one grouped query."""
    if not booking_ids:
        return {}
    rows = (
        db.query(StudentRegistration.booking_id, func.count(StudentRegistration.id))
        .filter(StudentRegistration.booking_id.in_(booking_ids))
        .group_by(StudentRegistration.booking_id)
        .all()
    )
    return {booking_id: count for booking_id, count in rows}


def list_live_for_month(
    db: Session,
    month: int,
    year: int,
    hall_id: Optional[str] = None,
    teacher_id: Optional[str] = None,
) -> List[Tuple[Booking, int]]:
    """
    Active bookings whose date range touches the month, each paired with its
    registration count.
    """
    first_day, _ = month_bounds(month, year)
    last_day = last_day_of_month(month, year)

    query = db.query(Booking).filter(
        Booking.status == "active",
        Booking.start_date <= last_day,
        or_(Booking.end_date.is_(None), Booking.end_date >= first_day),
    )
    if hall_id:
        query = query.filter(Booking.hall_id == hall_id)
    if teacher_id:
        query = query.filter(Booking.teacher_id == teacher_id)

    bookings = query.order_by(Booking.start_time, Booking.created_at).all()
    counts = count_registrations_by_booking(db, [b.id for b in bookings])
    return [(booking, counts.get(booking.id, 0)) for booking in bookings]


def delete_booking(db: Session, booking_id: str) -> Dict[str, int]:
    """
    Permanently delete a booking with its registrations, payments and
    attendance, all in one transaction.

    Returns:
        Counts of the dependent rows that were removed
    """
    booking = get_or_raise(db, Booking, booking_id)
    registration_ids = [
        row[0]
        for row in db.query(StudentRegistration.id)
        .filter(StudentRegistration.booking_id == booking.id)
        .all()
    ]
    removed = {
        "registrations": len(registration_ids),
        "payments": db.query(PaymentRecord)
        .filter(PaymentRecord.registration_id.in_(registration_ids))
        .count(),
        "attendance": db.query(AttendanceRecord)
        .filter(AttendanceRecord.registration_id.in_(registration_ids))
        .count(),
    }

    with transaction(db):
        db.delete(booking)

    logger.info(
        f"Deleted booking {booking_id} with {removed['registrations']} registrations, "
        f"{removed['payments']} payments and {removed['attendance']} attendance records"
    )
    return removed
