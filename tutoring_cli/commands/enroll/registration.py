from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutoring_cli.commands.booking.catalog import effective_fee
from tutoring_cli.commands.pay.payments import refresh_registration_totals
from tutoring_cli.db.config import transaction
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import DuplicateRegistration
from tutoring_cli.models import Booking, Student, StudentRegistration
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import require_non_negative

logger = get_logger(__name__)


def _find_registration(
    db: Session, student_id: str, booking_id: str
) -> Optional[StudentRegistration]:
    return (
        db.query(StudentRegistration)
        .filter(
            StudentRegistration.student_id == student_id,
            StudentRegistration.booking_id == booking_id,
        )
        .first()
    )


def register(
    db: Session,
    student_id: str,
    booking_id: str,
    total_fees=None,
    notes: Optional[str] = None,
    registration_date=None,
    created_by: Optional[str] = None,
) -> StudentRegistration:
    """
    Enroll a student in a booking.

    Without an explicit fee the registration takes the booking's effective
    fee. Any explicit fee marks the registration as overridden, even one
    equal to the current default, so later fee changes leave it alone.

    Raises:
        NotFound: If the student or booking does not exist
        DuplicateRegistration: If the student is already in the booking
    """
    student = get_or_raise(db, Student, student_id)
    booking = get_or_raise(db, Booking, booking_id)

    if _find_registration(db, student.id, booking.id):
        raise DuplicateRegistration(student.id, booking.id)

    overridden = total_fees is not None
    if overridden:
        fees = require_non_negative(total_fees, "total fees")
    else:
        fees = effective_fee(booking)

    registration = StudentRegistration(
        student_id=student.id,
        booking_id=booking.id,
        total_fees=fees,
        paid_amount=0,
        payment_status="pending",
        fee_overridden=overridden,
        notes=notes,
        created_by=created_by,
    )
    if registration_date is not None:
        registration.registration_date = registration_date

    db.add(registration)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(
            f"Registration of {student.id} in {booking.id} lost a race with another insert"
        )
        raise DuplicateRegistration(student.id, booking.id)

    logger.info(
        f"Registered student {student.serial_number} in booking {booking.id} for {fees}"
    )
    return registration


def update_registration_fee(
    db: Session, registration_id: str, total_fees
) -> StudentRegistration:
    """Give a registration its own fee and re-derive its payment status."""
    fees = require_non_negative(total_fees, "total fees")

    with transaction(db):
        registration = get_or_raise(db, StudentRegistration, registration_id)
        registration.total_fees = fees
        registration.fee_overridden = True
        refresh_registration_totals(db, registration)

    logger.info(
        f"Registration {registration_id} fee set to {fees} ({registration.payment_status})"
    )
    return registration


def delete_registration(db: Session, registration_id: str) -> None:
    """Remove a registration together with its payments and attendance."""
    registration = get_or_raise(db, StudentRegistration, registration_id)
    with transaction(db):
        db.delete(registration)
    logger.info(f"Deleted registration {registration_id}")


def student_registrations(db: Session, student_id: str) -> List[StudentRegistration]:
    get_or_raise(db, Student, student_id)
    return (
        db.query(StudentRegistration)
        .filter(StudentRegistration.student_id == student_id)
        .order_by(StudentRegistration.created_at)
        .all()
    )
