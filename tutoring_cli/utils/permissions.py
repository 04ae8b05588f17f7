"""
Role gating for the daily settlement ledger.

Every role check lives here so the ledger and the command line agree on
who may record, request and moderate settlements.
"""

from datetime import date
from typing import FrozenSet, Optional

from tutoring_cli.errors import PermissionDenied
from tutoring_cli.models import User

ALL_ROLES: FrozenSet[str] = frozenset(
    {"owner", "manager", "space_manager", "read_only", "teacher", "admin"}
)
MODERATOR_ROLES: FrozenSet[str] = frozenset({"owner", "manager", "admin"})
SETTLEMENT_RECORDER_ROLES: FrozenSet[str] = MODERATOR_ROLES | {"space_manager"}


def can_moderate_settlement(role: Optional[str]) -> bool:
    """True for roles that edit, delete and resolve settlement requests directly."""
    return role in MODERATOR_ROLES


def can_record_settlement(role: Optional[str]) -> bool:
    return role in SETTLEMENT_RECORDER_ROLES


def is_date_restricted(role: Optional[str]) -> bool:
    """Hall-level staff may only work on today's settlements."""
    return role == "space_manager"


def ensure_can_record(user: User, settlement_date: date, today: date) -> None:
    if not can_record_settlement(user.role):
        raise PermissionDenied(f"Role {user.role!r} cannot record settlements")
    if is_date_restricted(user.role) and settlement_date != today:
        raise PermissionDenied(
            f"Role {user.role!r} can only record settlements dated {today.isoformat()}"
        )


def ensure_can_moderate(user: User) -> None:
    if not can_moderate_settlement(user.role):
        raise PermissionDenied(f"Role {user.role!r} cannot moderate settlements")
