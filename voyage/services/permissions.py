from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from ..constants import ROLE_ADMIN, ROLE_PRIORITY, STATUS_SUBMITTED
from ..core.errors import NotFoundError, PermissionDeniedError
from ..models.models import Expense, Profile, UserRole


def _is_blank(user_id: Optional[str]) -> bool:
    return not user_id or not str(user_id).strip()


def has_role(session: Session, user_id: Optional[str], role: str) -> bool:
    if _is_blank(user_id):
        return False
    row = (
        session.query(UserRole.user_id)
        .filter(UserRole.user_id == user_id, UserRole.role == role)
        .first()
    )
    return row is not None


def get_role_names(session: Session, user_id: Optional[str]) -> List[str]:
    if _is_blank(user_id):
        return []
    rows = session.query(UserRole.role).filter(UserRole.user_id == user_id).all()
    return [row[0] for row in rows]


def get_primary_role(session: Session, user_id: Optional[str]) -> Optional[str]:
    """Highest-priority role held by the user (admin > cashier > engineer > employee)."""
    roles = get_role_names(session, user_id)
    if not roles:
        return None
    return max(roles, key=lambda name: ROLE_PRIORITY.get(name, 0))


def get_users_with_role(session: Session, role: str) -> List[str]:
    rows = (
        session.query(UserRole.user_id)
        .filter(UserRole.role == role)
        .order_by(UserRole.assigned_at.asc(), UserRole.user_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def can_user_edit(session: Session, expense: Expense, user_id: Optional[str]) -> bool:
    if has_role(session, user_id, ROLE_ADMIN):
        return True
    return expense.user_id == user_id and expense.status == STATUS_SUBMITTED


def can_engineer_review(expense: Expense, engineer_id: Optional[str]) -> bool:
    # Status is checked separately by the transition being attempted.
    if _is_blank(engineer_id):
        return False
    return expense.assigned_engineer_id == engineer_id


def require_role(session: Session, user_id: Optional[str], role: str, message: str) -> None:
    if not has_role(session, user_id, role):
        raise PermissionDeniedError(message)


def get_expense_or_404(session: Session, expense_id: str) -> Expense:
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found")
    return expense


def get_profile_or_404(session: Session, user_id: Optional[str]) -> Profile:
    profile = session.get(Profile, user_id) if not _is_blank(user_id) else None
    if profile is None:
        raise NotFoundError(f"Profile for user {user_id} not found")
    return profile
