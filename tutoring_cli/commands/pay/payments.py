from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tutoring_cli.db.config import transaction
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import NotFound, ValidationError
from tutoring_cli.models import PaymentRecord, PaymentStatus, StudentRegistration
from tutoring_cli.utils.dates import month_bounds
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import require_positive, to_decimal

logger = get_logger(__name__)

PAYMENT_METHODS = ("cash", "card", "transfer", "other")


@dataclass
class MonthlyCollectionStatus:
    """Whether a registration has been billed for a given calendar month."""

    registration_id: str
    month: int
    year: int
    amount: Decimal
    paid_this_month: bool


def derive_payment_status(paid_amount: Decimal, total_fees: Decimal) -> PaymentStatus:
    """
    paid: the full fee is covered and there is a fee to cover.
    partial: something was paid but less than the fee.
    pending: anything else, including a zero fee.
    """
    if total_fees > 0 and paid_amount >= total_fees:
        return "paid"
    if 0 < paid_amount < total_fees:
        return "partial"
    return "pending"


def total_paid(db: Session, registration_id: str) -> Decimal:
    """All-time sum of the payment rows referencing a registration."""
    value = (
        db.query(func.coalesce(func.sum(PaymentRecord.amount), 0))
        .filter(PaymentRecord.registration_id == registration_id)
        .scalar()
    )
    return to_decimal(value or 0)


def paid_this_month(db: Session, registration_id: str, month: int, year: int) -> Decimal:
    """Sum of payments dated inside [first of month, first of next month)."""
    start, next_start = month_bounds(month, year)
    value = (
        db.query(func.coalesce(func.sum(PaymentRecord.amount), 0))
        .filter(
            PaymentRecord.registration_id == registration_id,
            PaymentRecord.payment_date >= start,
            PaymentRecord.payment_date < next_start,
        )
        .scalar()
    )
    return to_decimal(value or 0)


def derive_monthly_collection_status(
    db: Session, registration_id: str, month: int, year: int
) -> MonthlyCollectionStatus:
    get_or_raise(db, StudentRegistration, registration_id)
    amount = paid_this_month(db, registration_id, month, year)
    return MonthlyCollectionStatus(
        registration_id=registration_id,
        month=month,
        year=year,
        amount=amount,
        paid_this_month=amount > 0,
    )


def refresh_registration_totals(
    db: Session, registration: StudentRegistration
) -> StudentRegistration:
    """
    Recompute paid_amount and payment_status from the payment rows.

    Pending changes must be flushed before calling so the aggregate sees them.
    Does not commit.
    """
    paid = total_paid(db, registration.id)
    registration.paid_amount = paid
    registration.payment_status = derive_payment_status(
        paid, to_decimal(registration.total_fees)
    )
    return registration


def _lock_registration(db: Session, registration_id: str) -> StudentRegistration:
    registration = (
        db.query(StudentRegistration)
        .filter(StudentRegistration.id == registration_id)
        .with_for_update()
        .first()
    )
    if registration is None:
        raise NotFound("StudentRegistration", registration_id)
    return registration


def record_payment(
    db: Session,
    registration_id: str,
    amount,
    payment_date: Optional[date] = None,
    payment_method: str = "cash",
    notes: Optional[str] = None,
    reference_number: Optional[str] = None,
    created_by: Optional[str] = None,
) -> PaymentRecord:
    """
    Append a payment and re-derive the registration's totals.

    The registration row is locked for the duration of the write on databases
    that support ``SELECT ... FOR UPDATE``; the paid amount is always the sum
    of the stored payment rows, never an increment of the cached value.
    """
    value = require_positive(amount)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method {payment_method!r}, expected one of {', '.join(PAYMENT_METHODS)}"
        )

    with transaction(db):
        registration = _lock_registration(db, registration_id)
        payment = PaymentRecord(
            registration_id=registration.id,
            amount=value,
            payment_date=payment_date or date.today(),
            payment_method=payment_method,
            notes=notes,
            reference_number=reference_number,
            created_by=created_by,
        )
        db.add(payment)
        db.flush()
        refresh_registration_totals(db, registration)

    logger.info(
        f"Recorded payment {payment.id} of {value} for registration {registration_id} "
        f"(paid {registration.paid_amount}/{registration.total_fees}, {registration.payment_status})"
    )
    return payment


def remove_payment(db: Session, payment_id: str) -> StudentRegistration:
    """Delete a payment receipt and re-derive its registration's totals."""
    payment = get_or_raise(db, PaymentRecord, payment_id)
    registration_id = payment.registration_id

    with transaction(db):
        registration = _lock_registration(db, registration_id)
        db.delete(payment)
        db.flush()
        refresh_registration_totals(db, registration)

    logger.info(f"Removed payment {payment_id} from registration {registration_id}")
    return registration


def list_payments(db: Session, registration_id: str) -> List[PaymentRecord]:
    return (
        db.query(PaymentRecord)
        .filter(PaymentRecord.registration_id == registration_id)
        .order_by(PaymentRecord.payment_date.desc(), PaymentRecord.created_at.desc())
        .all()
    )
