from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from tutoring_cli.models import Booking, Hall, StudentRegistration, Teacher
from tutoring_cli.utils.money import to_decimal

OUTSTANDING_STATUSES = ("pending", "partial")


@dataclass
class FinanceFigures:
    student_count: int
    expected: Decimal
    collected: Decimal
    paid_count: int
    partial_count: int
    pending_count: int

    @property
    def outstanding(self) -> Decimal:
        return max(Decimal("0.00"), self.expected - self.collected)

    @property
    def collection_rate(self) -> Decimal:
        """Collected as a percentage of expected, one decimal place."""
        if self.expected <= 0:
            return Decimal("0.0")
        return (self.collected / self.expected * 100).quantize(Decimal("0.1"))


@dataclass
class ClassFinance(FinanceFigures):
    booking_id: str
    class_code: Optional[str]
    hall_name: str
    teacher_name: str


def _status_count(status: str):
    return func.coalesce(
        func.sum(case((StudentRegistration.payment_status == status, 1), else_=0)), 0
    )


def class_financial_report(
    db: Session,
    teacher_id: Optional[str] = None,
    hall_id: Optional[str] = None,
) -> List[ClassFinance]:
    """
    Fees expected and collected per class, from one grouped query.

    Only classes with at least one registration appear. Expected is the sum
    of ``total_fees`` and collected the sum of ``paid_amount``.
    """
    query = (
        db.query(
            Booking.id,
            Booking.class_code,
            Hall.name,
            Teacher.name,
            func.count(StudentRegistration.id),
            func.coalesce(func.sum(StudentRegistration.total_fees), 0),
            func.coalesce(func.sum(StudentRegistration.paid_amount), 0),
            _status_count("paid"),
            _status_count("partial"),
            _status_count("pending"),
        )
        .join(StudentRegistration, StudentRegistration.booking_id == Booking.id)
        .join(Hall, Booking.hall_id == Hall.id)
        .join(Teacher, Booking.teacher_id == Teacher.id)
    )
    if teacher_id:
        query = query.filter(Booking.teacher_id == teacher_id)
    if hall_id:
        query = query.filter(Booking.hall_id == hall_id)

    rows = (
        query.group_by(Booking.id, Booking.class_code, Hall.name, Teacher.name)
        .order_by(Hall.name, Booking.class_code)
        .all()
    )
    return [
        ClassFinance(
            booking_id=booking_id,
            class_code=class_code,
            hall_name=hall_name,
            teacher_name=teacher_name,
            student_count=count,
            expected=to_decimal(expected),
            collected=to_decimal(collected),
            paid_count=int(paid),
            partial_count=int(partial),
            pending_count=int(pending),
        )
        for (
            booking_id,
            class_code,
            hall_name,
            teacher_name,
            count,
            expected,
            collected,
            paid,
            partial,
            pending,
        ) in rows
    ]


def report_totals(classes: List[ClassFinance]) -> FinanceFigures:
    return FinanceFigures(
        student_count=sum(c.student_count for c in classes),
        expected=sum((c.expected for c in classes), Decimal("0.00")),
        collected=sum((c.collected for c in classes), Decimal("0.00")),
        paid_count=sum(c.paid_count for c in classes),
        partial_count=sum(c.partial_count for c in classes),
        pending_count=sum(c.pending_count for c in classes),
    )


def outstanding_registrations(
    db: Session, limit: Optional[int] = None
) -> List[StudentRegistration]:
    """Registrations still owing money, newest first."""
    query = (
        db.query(StudentRegistration)
        .filter(StudentRegistration.payment_status.in_(OUTSTANDING_STATUSES))
        .order_by(StudentRegistration.created_at.desc(), StudentRegistration.id)
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def count_outstanding(db: Session) -> int:
    return (
        db.query(func.count(StudentRegistration.id))
        .filter(StudentRegistration.payment_status.in_(OUTSTANDING_STATUSES))
        .scalar()
    )
