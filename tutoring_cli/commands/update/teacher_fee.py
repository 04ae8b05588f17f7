from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.orm import Session

from tutoring_cli.commands.booking.catalog import effective_fee, update_fee
from tutoring_cli.commands.pay.payments import refresh_registration_totals
from tutoring_cli.db.config import transaction
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import NotFound, ValidationError
from tutoring_cli.models import Booking, StudentRegistration, Teacher
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import require_non_negative

logger = get_logger(__name__)


@dataclass
class CascadeResult:
    teacher_id: str
    new_fee: Decimal
    previous_fees: Dict[str, Decimal] = field(default_factory=dict)
    skipped_custom: List[str] = field(default_factory=list)
    pinned: List[str] = field(default_factory=list)
    registrations_updated: int = 0

    @property
    def bookings_updated(self) -> List[str]:
        return list(self.previous_fees)


def _selected_bookings(
    db: Session, teacher: Teacher, booking_ids: List[str]
) -> List[Booking]:
    unique_ids = list(dict.fromkeys(booking_ids))
    bookings = db.query(Booking).filter(Booking.id.in_(unique_ids)).all()
    found = {b.id: b for b in bookings}

    for booking_id in unique_ids:
        booking = found.get(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        if booking.teacher_id != teacher.id:
            raise ValidationError(
                f"Booking {booking_id} does not belong to teacher {teacher.name}"
            )
    return [found[booking_id] for booking_id in unique_ids]


def apply_teacher_default_fee(
    db: Session,
    teacher_id: str,
    new_fee,
    booking_ids: List[str],
    apply_to_current_month: bool = False,
) -> CascadeResult:
    """
    Change a teacher's default class fee and push it to chosen bookings.

    Only the bookings named in ``booking_ids`` take the new fee, and those
    pinned with a custom fee are skipped. The teacher's other bookings that
    still relied on the old default get it written into their own ``fee``,
    so their effective fee does not move.

    With ``apply_to_current_month`` the new fee also replaces ``total_fees``
    on every registration under a touched booking that was not given its own
    fee, and payment statuses are re-derived.

    All changes are applied in one transaction: either the whole cascade
    lands or none of it does.

    Raises:
        ValidationError: If the fee is negative or a booking belongs to another teacher
        NotFound: If the teacher or a booking does not exist
    """
    fee = require_non_negative(new_fee)
    result = CascadeResult(teacher_id=teacher_id, new_fee=fee)

    with transaction(db):
        teacher = get_or_raise(db, Teacher, teacher_id)
        bookings = _selected_bookings(db, teacher, booking_ids)

        for booking in bookings:
            if booking.is_custom_fee:
                result.skipped_custom.append(booking.id)
                continue
            result.previous_fees[booking.id] = effective_fee(booking)
            update_fee(db, booking.id, fee, commit=False)

        # Unselected bookings still on the teacher default keep their current fee.
        selected_ids = [b.id for b in bookings]
        followers = (
            db.query(Booking)
            .filter(
                Booking.teacher_id == teacher.id,
                Booking.fee.is_(None),
                Booking.id.not_in(selected_ids),
            )
            .all()
        )
        for booking in followers:
            booking.fee = effective_fee(booking)
            result.pinned.append(booking.id)

        teacher.default_class_fee = fee

        if apply_to_current_month and result.previous_fees:
            registrations = (
                db.query(StudentRegistration)
                .filter(
                    StudentRegistration.booking_id.in_(result.bookings_updated),
                    StudentRegistration.fee_overridden.is_(False),
                )
                .all()
            )
            for registration in registrations:
                registration.total_fees = fee
                refresh_registration_totals(db, registration)
            result.registrations_updated = len(registrations)

    logger.info(
        f"Teacher {teacher_id} default fee set to {fee}: "
        f"{len(result.previous_fees)} bookings, {result.registrations_updated} registrations updated, "
        f"{len(result.pinned)} other bookings kept at their previous fee, "
        f"{len(result.skipped_custom)} custom-fee bookings skipped"
    )
    return result
