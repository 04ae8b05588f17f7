"""
Front-desk flows that touch several registrations at once.

Each unit of work commits on its own, so a failure halfway through leaves
earlier units in place and is reported per registration instead of
undoing the whole batch.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from tutoring_cli.commands.attend.attendance import mark_attendance
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.commands.pay.payments import paid_this_month, record_payment
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import PartialBatchFailure
from tutoring_cli.models import Booking, Student, StudentRegistration
from tutoring_cli.utils.dates import weekday_name
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import to_decimal

logger = get_logger(__name__)


@dataclass
class RegistrationOutcome:
    registration_id: str
    booking_id: str
    attendance_marked: bool = False
    attendance_error: Optional[str] = None
    payment_id: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_skipped_reason: Optional[str] = None
    payment_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.attendance_error is None and self.payment_error is None


@dataclass
class FastProcessReport:
    student_id: str
    process_date: date
    outcomes: List[RegistrationOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    def summary(self) -> str:
        return f"{self.succeeded} of {len(self.outcomes)} succeeded"

    def raise_for_failures(self) -> None:
        """Raise ``PartialBatchFailure`` carrying this report if any unit failed."""
        if self.failed:
            raise PartialBatchFailure(self, self.failed, len(self.outcomes))


def _is_held_on(booking: Booking, day: date) -> bool:
    return (
        booking.status == "active"
        and booking.start_date <= day
        and (booking.end_date is None or booking.end_date >= day)
        and weekday_name(day) in booking.days_of_week
    )


def todays_registrations(
    db: Session, student_id: str, today: date
) -> List[StudentRegistration]:
    """Registrations of the student whose class meets on ``today``."""
    registrations = (
        db.query(StudentRegistration)
        .join(Booking, StudentRegistration.booking_id == Booking.id)
        .filter(
            StudentRegistration.student_id == student_id,
            Booking.status == "active",
        )
        .order_by(Booking.start_time, StudentRegistration.created_at)
        .all()
    )
    return [r for r in registrations if _is_held_on(r.booking, today)]


def fast_process(
    db: Session,
    student_id: str,
    today: Optional[date] = None,
    created_by: Optional[str] = None,
) -> FastProcessReport:
    """
    Check a student in for every class they have today.

    For each matching registration the student is marked present and, when
    nothing has been paid yet this month and the fee is above zero, the full
    fee is collected. Failures are rolled back, logged and recorded on the
    registration's outcome; processing continues with the next unit.
    """
    get_or_raise(db, Student, student_id)
    today = today or date.today()

    # Read everything needed up front; a rollback expires loaded instances.
    units = [
        (r.id, r.booking_id, to_decimal(r.total_fees))
        for r in todays_registrations(db, student_id, today)
    ]
    report = FastProcessReport(student_id=student_id, process_date=today)

    for registration_id, booking_id, total_fees in units:
        outcome = RegistrationOutcome(
            registration_id=registration_id, booking_id=booking_id
        )
        report.outcomes.append(outcome)

        try:
            mark_attendance(db, registration_id, today, created_by=created_by)
            outcome.attendance_marked = True
        except Exception as e:
            db.rollback()
            outcome.attendance_error = str(e)
            logger.error(
                f"Attendance failed for registration {registration_id} on {today}: {e}"
            )

        if total_fees <= 0:
            outcome.payment_skipped_reason = "no fee"
            continue

        try:
            if paid_this_month(db, registration_id, today.month, today.year) > 0:
                outcome.payment_skipped_reason = "already paid this month"
                continue
            payment = record_payment(
                db,
                registration_id,
                total_fees,
                payment_date=today,
                created_by=created_by,
            )
            outcome.payment_id = payment.id
            outcome.payment_amount = total_fees
        except Exception as e:
            db.rollback()
            outcome.payment_error = str(e)
            logger.error(
                f"Payment failed for registration {registration_id} on {today}: {e}"
            )

    logger.info(f"Fast process for student {student_id}: {report.summary()}")
    return report


@dataclass
class FastRegistrationEntry:
    booking_id: str
    total_fees: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None


@dataclass
class FastRegistrationOutcome:
    booking_id: str
    registration_id: Optional[str] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def fast_register(
    db: Session,
    student_id: str,
    entries: List[FastRegistrationEntry],
    today: Optional[date] = None,
    created_by: Optional[str] = None,
) -> List[FastRegistrationOutcome]:
    """
    Enroll a student in several bookings in one go, taking any up-front
    payment for each booking.

    Each booking is handled independently; a duplicate or invalid entry is
    reported without affecting the others.
    """
    get_or_raise(db, Student, student_id)
    today = today or date.today()
    outcomes = []

    for entry in entries:
        outcome = FastRegistrationOutcome(booking_id=entry.booking_id)
        outcomes.append(outcome)
        try:
            registration = register(
                db,
                student_id,
                entry.booking_id,
                total_fees=entry.total_fees,
                registration_date=today,
                created_by=created_by,
            )
            outcome.registration_id = registration.id
            if entry.paid_amount is not None and to_decimal(entry.paid_amount) > 0:
                payment = record_payment(
                    db,
                    registration.id,
                    entry.paid_amount,
                    payment_date=today,
                    created_by=created_by,
                )
                outcome.payment_id = payment.id
        except Exception as e:
            db.rollback()
            outcome.error = str(e)
            logger.error(
                f"Fast registration of {student_id} in booking {entry.booking_id} failed: {e}"
            )

    succeeded = sum(1 for o in outcomes if o.succeeded)
    logger.info(
        f"Fast registration for student {student_id}: {succeeded} of {len(outcomes)} succeeded"
    )
    return outcomes
