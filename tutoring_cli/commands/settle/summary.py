from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from tutoring_cli.models import DailySettlement, PaymentRecord
from tutoring_cli.utils.dates import month_bounds
from tutoring_cli.utils.money import to_decimal


@dataclass
class DailySummary:
    settlement_date: date
    total_income: Decimal
    total_expenses: Decimal
    net_amount: Decimal
    income_count: int
    expense_count: int


@dataclass
class TeacherContribution:
    teacher_id: str
    teacher_name: str
    total_amount: Decimal
    entry_count: int


@dataclass
class MonthlyFinancialSummary:
    month: int
    year: int
    payments_collected: Decimal
    payment_count: int
    settlement_income: Decimal
    settlement_expenses: Decimal

    @property
    def net_settlement(self) -> Decimal:
        return self.settlement_income - self.settlement_expenses


def _totals_by_type(db: Session, *criteria):
    """Sum and count of non-deleted settlements per type; pending ones still count."""
    return (
        db.query(
            func.coalesce(
                func.sum(
                    case((DailySettlement.type == "income", DailySettlement.amount), else_=0)
                ),
                0,
            ),
            func.coalesce(
                func.sum(
                    case((DailySettlement.type == "expense", DailySettlement.amount), else_=0)
                ),
                0,
            ),
            func.coalesce(
                func.sum(case((DailySettlement.type == "income", 1), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((DailySettlement.type == "expense", 1), else_=0)), 0
            ),
        )
        .filter(DailySettlement.status != "deleted", *criteria)
        .one()
    )


def get_daily_summary(db: Session, settlement_date: date) -> DailySummary:
    income, expenses, income_count, expense_count = _totals_by_type(
        db, DailySettlement.settlement_date == settlement_date
    )
    income = to_decimal(income)
    expenses = to_decimal(expenses)
    return DailySummary(
        settlement_date=settlement_date,
        total_income=income,
        total_expenses=expenses,
        net_amount=income - expenses,
        income_count=int(income_count),
        expense_count=int(expense_count),
    )


def teacher_contributions(
    db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None
) -> List[TeacherContribution]:
    """Income received from teachers, grouped per teacher, largest first."""
    total = func.sum(DailySettlement.amount)
    query = db.query(
        DailySettlement.source_id,
        func.max(DailySettlement.source_name),
        total,
        func.count(DailySettlement.id),
    ).filter(
        DailySettlement.type == "income",
        DailySettlement.source_type == "teacher",
        DailySettlement.source_id.is_not(None),
        DailySettlement.status != "deleted",
    )
    if start_date:
        query = query.filter(DailySettlement.settlement_date >= start_date)
    if end_date:
        query = query.filter(DailySettlement.settlement_date <= end_date)

    rows = query.group_by(DailySettlement.source_id).order_by(total.desc()).all()
    return [
        TeacherContribution(
            teacher_id=teacher_id,
            teacher_name=name,
            total_amount=to_decimal(amount),
            entry_count=count,
        )
        for teacher_id, name, amount, count in rows
    ]


def monthly_financial_summary(
    db: Session, month: int, year: int
) -> MonthlyFinancialSummary:
    """Student payments taken in a month next to the month's settlement totals."""
    start, next_start = month_bounds(month, year)

    collected, payment_count = (
        db.query(
            func.coalesce(func.sum(PaymentRecord.amount), 0),
            func.count(PaymentRecord.id),
        )
        .filter(
            PaymentRecord.payment_date >= start,
            PaymentRecord.payment_date < next_start,
        )
        .one()
    )
    income, expenses, _, _ = _totals_by_type(
        db,
        DailySettlement.settlement_date >= start,
        DailySettlement.settlement_date < next_start,
    )
    return MonthlyFinancialSummary(
        month=month,
        year=year,
        payments_collected=to_decimal(collected),
        payment_count=payment_count,
        settlement_income=to_decimal(income),
        settlement_expenses=to_decimal(expenses),
    )
