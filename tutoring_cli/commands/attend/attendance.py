from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.models import AttendanceRecord, Booking, StudentRegistration
from tutoring_cli.utils.logging_config import get_logger

logger = get_logger(__name__)


def _find_attendance(
    db: Session, registration_id: str, attendance_date: date
) -> Optional[AttendanceRecord]:
    return (
        db.query(AttendanceRecord)
        .filter(
            AttendanceRecord.registration_id == registration_id,
            AttendanceRecord.attendance_date == attendance_date,
        )
        .first()
    )


def mark_attendance(
    db: Session,
    registration_id: str,
    attendance_date: Optional[date] = None,
    created_by: Optional[str] = None,
) -> AttendanceRecord:
    """
    Mark a registration present on a date.

    Marking the same registration twice on one date returns the existing row.
    A concurrent insert that wins the unique (registration, date) race is
    re-read instead of surfacing the constraint error.
    """
    get_or_raise(db, StudentRegistration, registration_id)
    attendance_date = attendance_date or date.today()

    existing = _find_attendance(db, registration_id, attendance_date)
    if existing:
        logger.debug(
            f"Registration {registration_id} already present on {attendance_date}"
        )
        return existing

    record = AttendanceRecord(
        registration_id=registration_id,
        attendance_date=attendance_date,
        created_by=created_by,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_attendance(db, registration_id, attendance_date)
        if existing is None:
            raise
        return existing

    logger.info(f"Marked registration {registration_id} present on {attendance_date}")
    return record


def is_present(db: Session, registration_id: str, attendance_date: date) -> bool:
    """Absence is not stored: no row for the date means absent."""
    return _find_attendance(db, registration_id, attendance_date) is not None


def attendance_dates(db: Session, registration_id: str) -> List[date]:
    rows = (
        db.query(AttendanceRecord.attendance_date)
        .filter(AttendanceRecord.registration_id == registration_id)
        .order_by(
            AttendanceRecord.attendance_date.desc(), AttendanceRecord.marked_at.desc()
        )
        .all()
    )
    return [row[0] for row in rows]


def booking_roll_call(
    db: Session, booking_id: str, attendance_date: date
) -> List[Tuple[StudentRegistration, bool]]:
    """
    Presence of every student of a booking on a date.

    Registrations made after the date are left out, so a student is never
    reported absent from a class held before they enrolled.
    """
    get_or_raise(db, Booking, booking_id)
    registrations = (
        db.query(StudentRegistration)
        .filter(
            StudentRegistration.booking_id == booking_id,
            StudentRegistration.registration_date <= attendance_date,
        )
        .order_by(StudentRegistration.registration_date, StudentRegistration.created_at)
        .all()
    )
    present_ids = {
        row[0]
        for row in db.query(AttendanceRecord.registration_id)
        .filter(
            AttendanceRecord.registration_id.in_([r.id for r in registrations]),
            AttendanceRecord.attendance_date == attendance_date,
        )
        .all()
    }
    return [(r, r.id in present_ids) for r in registrations]
