from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from tutoring_cli.commands.settle.settlements import apply_settlement_changes
from tutoring_cli.db.config import transaction
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import RequestAlreadyResolved
from tutoring_cli.models import (
    DailySettlement,
    SettlementChangeRequest,
    User,
    now_timestamp,
)
from tutoring_cli.utils.logging_config import get_audit_logger, get_logger
from tutoring_cli.utils.permissions import ensure_can_moderate

logger = get_logger(__name__)


def _claim_request(
    db: Session, actor: User, request_id: str, outcome: str
) -> SettlementChangeRequest:
    """
    Move a request out of ``pending`` with a conditional update.

    Only one reviewer can win: a second attempt, even from another session
    that read the request while it was still pending, matches no row.
    """
    request = get_or_raise(db, SettlementChangeRequest, request_id)
    claimed = (
        db.query(SettlementChangeRequest)
        .filter(
            SettlementChangeRequest.id == request_id,
            SettlementChangeRequest.status == "pending",
        )
        .update(
            {
                "status": outcome,
                "reviewed_by": actor.id,
                "reviewed_at": now_timestamp(),
            },
            synchronize_session=False,
        )
    )
    if claimed == 0:
        db.refresh(request)
        raise RequestAlreadyResolved(request_id, request.status)
    return request


def approve_request(
    db: Session, actor: User, request_id: str
) -> SettlementChangeRequest:
    """
    Approve a pending change request.

    An edit is applied to the settlement, which returns to active; a delete
    moves the settlement to deleted so it drops out of summaries.

    Raises:
        PermissionDenied: If the actor cannot moderate settlements
        RequestAlreadyResolved: If the request is no longer pending
    """
    ensure_can_moderate(actor)
    with transaction(db):
        request = _claim_request(db, actor, request_id, "approved")
        settlement = get_or_raise(db, DailySettlement, request.settlement_id)
        if request.request_type == "edit":
            apply_settlement_changes(db, settlement, dict(request.payload or {}))
            settlement.status = "active"
        else:
            settlement.status = "deleted"
            settlement.updated_at = now_timestamp()

    get_audit_logger().info(
        f"{actor.name} ({actor.id}) approved {request.request_type} request {request_id} "
        f"on settlement {request.settlement_id}"
    )
    return request


def reject_request(
    db: Session, actor: User, request_id: str
) -> SettlementChangeRequest:
    """Reject a pending change request and return its settlement to active."""
    ensure_can_moderate(actor)
    with transaction(db):
        request = _claim_request(db, actor, request_id, "rejected")
        settlement = get_or_raise(db, DailySettlement, request.settlement_id)
        if settlement.status != "deleted":
            settlement.status = "active"

    get_audit_logger().info(
        f"{actor.name} ({actor.id}) rejected {request.request_type} request {request_id} "
        f"on settlement {request.settlement_id}"
    )
    return request


def list_requests(
    db: Session,
    settlement_date: Optional[date] = None,
    requested_by: Optional[str] = None,
    status: Optional[str] = "pending",
) -> List[SettlementChangeRequest]:
    query = db.query(SettlementChangeRequest).join(
        DailySettlement, SettlementChangeRequest.settlement_id == DailySettlement.id
    )
    if status:
        query = query.filter(SettlementChangeRequest.status == status)
    if settlement_date:
        query = query.filter(DailySettlement.settlement_date == settlement_date)
    if requested_by:
        query = query.filter(SettlementChangeRequest.requested_by == requested_by)
    return query.order_by(SettlementChangeRequest.created_at.desc()).all()
