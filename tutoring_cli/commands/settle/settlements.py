import os
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from tutoring_cli.db.config import transaction
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import PermissionDenied, ValidationError
from tutoring_cli.models import (
    DailySettlement,
    SettlementChangeRequest,
    Subject,
    Teacher,
    User,
    now_timestamp,
)
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import require_positive
from tutoring_cli.utils.permissions import (
    can_moderate_settlement,
    ensure_can_moderate,
    ensure_can_record,
)

logger = get_logger(__name__)

load_dotenv()

SETTLEMENT_TYPES = ("income", "expense")
SOURCE_TYPES = ("teacher", "other")
DEFAULT_EXPENSE_CATEGORIES = "utilities,maintenance,salaries,cleaning,stationery,security,other"
EDITABLE_FIELDS = (
    "settlement_date",
    "type",
    "amount",
    "source_type",
    "source_id",
    "source_name",
    "category",
    "subject_id",
    "notes",
)


def expense_categories_from_env() -> Tuple[str, ...]:
    """Comma separated ``EXPENSE_CATEGORIES``, lower-cased, falling back to the defaults."""
    raw = os.getenv("EXPENSE_CATEGORIES") or DEFAULT_EXPENSE_CATEGORIES
    categories = [c.strip().lower() for c in raw.split(",") if c.strip()]
    return tuple(dict.fromkeys(categories)) or tuple(
        DEFAULT_EXPENSE_CATEGORIES.split(",")
    )


EXPENSE_CATEGORIES = expense_categories_from_env()


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid settlement date: {value!r}")


def _validated_fields(db: Session, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a complete set of settlement fields and normalise them.

    Income needs a source; a teacher source takes the teacher's name. Expense
    needs a known category, which also serves as its source name.
    """
    entry_type = fields.get("type")
    if entry_type not in SETTLEMENT_TYPES:
        raise ValidationError(
            f"Invalid settlement type {entry_type!r}, expected income or expense"
        )

    cleaned = dict(fields)
    cleaned["settlement_date"] = _parse_date(fields.get("settlement_date"))
    cleaned["amount"] = require_positive(fields.get("amount"))

    if fields.get("subject_id"):
        get_or_raise(db, Subject, fields["subject_id"])

    if entry_type == "income":
        source_type = fields.get("source_type")
        if source_type not in SOURCE_TYPES:
            raise ValidationError("Income requires a source type of teacher or other")
        cleaned["category"] = None
        if source_type == "teacher":
            if not fields.get("source_id"):
                raise ValidationError("Teacher income requires a teacher")
            teacher = get_or_raise(db, Teacher, fields["source_id"])
            cleaned["source_name"] = teacher.name
        else:
            cleaned["source_id"] = None
            if not (fields.get("source_name") or "").strip():
                raise ValidationError("Income requires a source name")
            cleaned["source_name"] = fields["source_name"].strip()
    else:
        category = fields.get("category")
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(
                f"Invalid expense category {category!r}, expected one of {', '.join(EXPENSE_CATEGORIES)}"
            )
        cleaned["source_type"] = None
        cleaned["source_id"] = None
        cleaned["source_name"] = (fields.get("source_name") or "").strip() or category

    return cleaned


def _current_fields(settlement: DailySettlement) -> Dict[str, Any]:
    return {name: getattr(settlement, name) for name in EDITABLE_FIELDS}


def _merge_changes(
    db: Session, settlement: DailySettlement, changes: Dict[str, Any]
) -> Dict[str, Any]:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot change field(s): {', '.join(sorted(unknown))}")
    if not changes:
        raise ValidationError("No changes given")
    merged = _current_fields(settlement)
    # A name that only mirrored the old category follows the new one
    if (
        "category" in changes
        and "source_name" not in changes
        and settlement.source_name == settlement.category
    ):
        merged["source_name"] = None
    merged.update(changes)
    return _validated_fields(db, merged)


def serialize_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Make proposed changes JSON-safe for storage on a change request."""
    serialized = {}
    for name, value in changes.items():
        if isinstance(value, (Decimal, date)):
            value = value.isoformat() if isinstance(value, date) else str(value)
        serialized[name] = value
    return serialized


def apply_settlement_changes(
    db: Session, settlement: DailySettlement, changes: Dict[str, Any]
) -> DailySettlement:
    """Validate and write changes onto a settlement. Does not commit."""
    merged = _merge_changes(db, settlement, changes)
    for name, value in merged.items():
        setattr(settlement, name, value)
    settlement.updated_at = now_timestamp()
    return settlement


def create_settlement(
    db: Session,
    actor: User,
    settlement_date: date,
    type: str,
    amount,
    source_type: Optional[str] = None,
    source_id: Optional[str] = None,
    source_name: Optional[str] = None,
    category: Optional[str] = None,
    subject_id: Optional[str] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> DailySettlement:
    """
    Record an income or expense entry for a day.

    Raises:
        PermissionDenied: If the role cannot record settlements, or is a
            space manager recording for a day other than today
        ValidationError: For a non-positive amount or missing source/category
    """
    today = today or date.today()
    ensure_can_record(actor, _parse_date(settlement_date), today)
    fields = _validated_fields(
        db,
        {
            "settlement_date": settlement_date,
            "type": type,
            "amount": amount,
            "source_type": source_type,
            "source_id": source_id,
            "source_name": source_name,
            "category": category,
            "subject_id": subject_id,
            "notes": notes,
        },
    )
    settlement = DailySettlement(status="active", created_by=actor.id, **fields)
    db.add(settlement)
    db.commit()

    logger.info(
        f"{actor.name} recorded {settlement.type} of {settlement.amount} "
        f"({settlement.source_name}) on {settlement.settlement_date}"
    )
    return settlement


def _get_live_settlement(db: Session, settlement_id: str) -> DailySettlement:
    settlement = get_or_raise(db, DailySettlement, settlement_id)
    if settlement.status == "deleted":
        raise ValidationError(f"Settlement {settlement_id} has been deleted")
    return settlement


def update_settlement(
    db: Session, actor: User, settlement_id: str, changes: Dict[str, Any]
) -> DailySettlement:
    """Edit a settlement in place. Managers, owners and admins only."""
    ensure_can_moderate(actor)
    with transaction(db):
        settlement = _get_live_settlement(db, settlement_id)
        apply_settlement_changes(db, settlement, changes)

    logger.info(f"{actor.name} edited settlement {settlement_id}: {sorted(changes)}")
    return settlement


def delete_settlement(db: Session, actor: User, settlement_id: str) -> DailySettlement:
    """
    Remove a settlement from the day's totals. Managers, owners and admins only.

    Any request still pending on it is rejected in the same transaction.
    """
    ensure_can_moderate(actor)
    with transaction(db):
        settlement = _get_live_settlement(db, settlement_id)
        settlement.status = "deleted"
        settlement.updated_at = now_timestamp()
        rejected = (
            db.query(SettlementChangeRequest)
            .filter(
                SettlementChangeRequest.settlement_id == settlement.id,
                SettlementChangeRequest.status == "pending",
            )
            .update(
                {
                    "status": "rejected",
                    "reviewed_by": actor.id,
                    "reviewed_at": now_timestamp(),
                },
                synchronize_session=False,
            )
        )

    logger.info(
        f"{actor.name} deleted settlement {settlement_id} ({rejected} pending requests rejected)"
    )
    return settlement


def _ensure_can_request(
    actor: User, settlement: DailySettlement, today: date
) -> None:
    ensure_can_record(actor, settlement.settlement_date, today)
    if not can_moderate_settlement(actor.role) and settlement.created_by != actor.id:
        raise PermissionDenied("Only the creator of a settlement can request changes to it")
    if settlement.status != "active":
        raise ValidationError(
            f"Settlement {settlement.id} is {settlement.status.replace('_', ' ')} "
            "and cannot take a new request"
        )


def _file_request(
    db: Session,
    actor: User,
    settlement_id: str,
    request_type: str,
    payload: Dict[str, Any],
    reason: Optional[str],
    today: Optional[date],
) -> SettlementChangeRequest:
    today = today or date.today()
    with transaction(db):
        settlement = get_or_raise(db, DailySettlement, settlement_id)
        _ensure_can_request(actor, settlement, today)
        if request_type == "edit":
            merged = _merge_changes(db, settlement, payload)
            ensure_can_record(actor, merged["settlement_date"], today)

        request = SettlementChangeRequest(
            settlement_id=settlement.id,
            request_type=request_type,
            payload=serialize_changes(payload),
            reason=reason,
            status="pending",
            requested_by=actor.id,
        )
        db.add(request)
        settlement.status = f"pending_{request_type}"

    logger.info(
        f"{actor.name} requested {request_type} of settlement {settlement_id}: {reason or 'no reason'}"
    )
    return request


def request_edit(
    db: Session,
    actor: User,
    settlement_id: str,
    changes: Dict[str, Any],
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> SettlementChangeRequest:
    """
    Ask a manager to apply changes to a settlement.

    The changes are validated now so an approval can apply them as they are.
    The settlement stays counted in summaries while the request is pending.
    """
    return _file_request(db, actor, settlement_id, "edit", changes, reason, today)


def request_delete(
    db: Session,
    actor: User,
    settlement_id: str,
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> SettlementChangeRequest:
    return _file_request(db, actor, settlement_id, "delete", {}, reason, today)


def list_settlements(
    db: Session,
    start_date: date,
    end_date: Optional[date] = None,
    created_by: Optional[str] = None,
    include_deleted: bool = False,
) -> List[DailySettlement]:
    """Settlements dated in [start_date, end_date], newest first within each day."""
    query = db.query(DailySettlement).filter(
        DailySettlement.settlement_date >= start_date,
        DailySettlement.settlement_date <= (end_date or start_date),
    )
    if created_by:
        query = query.filter(DailySettlement.created_by == created_by)
    if not include_deleted:
        query = query.filter(DailySettlement.status != "deleted")
    return query.order_by(
        DailySettlement.settlement_date, DailySettlement.created_at.desc()
    ).all()
