from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..constants import ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_ENGINEER, STATUS_APPROVED
from ..core.errors import ValidationError
from ..models.models import AuditLog, Expense, Profile, UserRole, new_uuid
from ..schemas.schemas import ProfileCreate, ProfileUpdate
from ..utils.money import as_decimal
from .audit import audit_log
from .permissions import get_profile_or_404, has_role, require_role

logger = logging.getLogger(__name__)


def _email_taken(session: Session, email: str, exclude_user_id: Optional[str] = None) -> bool:
    query = session.query(Profile.user_id).filter(func.lower(Profile.email) == email.lower())
    if exclude_user_id:
        query = query.filter(Profile.user_id != exclude_user_id)
    return query.first() is not None


def _validated_reporting_engineer(
    session: Session, role: Optional[str], engineer_id: Optional[str], user_id: Optional[str] = None
) -> Optional[str]:
    # Only employees report to an engineer.
    if role != ROLE_EMPLOYEE or not engineer_id:
        return None
    if engineer_id == user_id:
        raise ValidationError("A user cannot report to themselves")
    if not has_role(session, engineer_id, ROLE_ENGINEER):
        raise ValidationError("Reporting engineer must hold the engineer role")
    return engineer_id


def create_user(session: Session, admin_id: str, data: ProfileCreate) -> Profile:
    require_role(session, admin_id, ROLE_ADMIN, "Only administrators can create users")
    if _email_taken(session, data.email):
        raise ValidationError("A user with this email already exists")
    user_id = data.user_id or new_uuid()
    if session.get(Profile, user_id) is not None:
        raise ValidationError(f"User {user_id} already exists")

    profile = Profile(
        user_id=user_id,
        name=data.name,
        email=data.email,
        balance=as_decimal(data.balance),
        reporting_engineer_id=_validated_reporting_engineer(
            session, data.role, data.reporting_engineer_id, user_id
        ),
    )
    profile.roles = [UserRole(role=data.role)]
    session.add(profile)
    session.commit()
    session.refresh(profile)

    logger.info("User %s created with role %s by %s", profile.user_id, data.role, admin_id)
    audit_log(session, admin_id, "user_created", comment=f"Created {profile.name} ({data.role})")
    return profile


def update_user(session: Session, admin_id: str, user_id: str, data: ProfileUpdate) -> Profile:
    require_role(session, admin_id, ROLE_ADMIN, "Only administrators can update users")
    profile = get_profile_or_404(session, user_id)
    changes = data.model_dump(exclude_unset=True)

    if changes.get("email") and _email_taken(session, changes["email"], exclude_user_id=user_id):
        raise ValidationError("A user with this email already exists")

    role = changes.get("role") or profile.role
    engineer_id = changes.get("reporting_engineer_id", profile.reporting_engineer_id)
    reporting_engineer_id = _validated_reporting_engineer(session, role, engineer_id, user_id)

    if changes.get("name"):
        profile.name = changes["name"]
    if changes.get("email"):
        profile.email = changes["email"]
    if changes.get("role") and changes["role"] != profile.role:
        # One role per user; replacing it drops the previous assignment.
        profile.roles = [UserRole(role=changes["role"])]
    profile.reporting_engineer_id = reporting_engineer_id
    session.commit()
    session.refresh(profile)

    logger.info("User %s updated by %s", user_id, admin_id)
    audit_log(session, admin_id, "user_updated", comment=f"Updated {profile.name}")
    return profile


def delete_user(session: Session, admin_id: str, user_id: str) -> None:
    require_role(session, admin_id, ROLE_ADMIN, "Only administrators can delete users")
    if admin_id == user_id:
        raise ValidationError("You cannot delete your own account")
    profile = get_profile_or_404(session, user_id)
    name = profile.name

    session.query(Profile).filter(Profile.reporting_engineer_id == user_id).update(
        {Profile.reporting_engineer_id: None}, synchronize_session=False
    )
    session.query(Expense).filter(Expense.assigned_engineer_id == user_id).update(
        {Expense.assigned_engineer_id: None}, synchronize_session=False
    )
    # Role rows and owned expenses go with the profile through the cascade.
    session.delete(profile)
    session.commit()

    logger.info("User %s deleted by %s", user_id, admin_id)
    audit_log(session, admin_id, "user_deleted", comment=f"Deleted {name}")


def list_users(session: Session) -> List[Profile]:
    return session.query(Profile).order_by(Profile.name.asc(), Profile.user_id.asc()).all()


def list_engineers(session: Session) -> List[Profile]:
    return (
        session.query(Profile)
        .join(UserRole, UserRole.user_id == Profile.user_id)
        .filter(UserRole.role == ROLE_ENGINEER)
        .order_by(Profile.name.asc())
        .all()
    )


def user_history(session: Session, user_id: str) -> dict:
    """Expenses, their audit trail, and approval deductions for one user."""
    profile = get_profile_or_404(session, user_id)
    expenses = (
        session.query(Expense)
        .filter(Expense.user_id == user_id)
        .order_by(Expense.created_at.desc())
        .all()
    )
    expense_ids = [expense.id for expense in expenses]
    grouped: Dict[str, List[AuditLog]] = {expense_id: [] for expense_id in expense_ids}
    if expense_ids:
        entries = (
            session.query(AuditLog)
            .filter(AuditLog.expense_id.in_(expense_ids))
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
            .all()
        )
        for entry in entries:
            grouped[entry.expense_id].append(entry)

    deductions = []
    total_deducted = Decimal("0")
    for expense in expenses:
        if expense.status != STATUS_APPROVED:
            continue
        approval = next(
            (entry for entry in reversed(grouped[expense.id]) if entry.action == "expense_approved"),
            None,
        )
        amount = as_decimal(expense.total_amount)
        total_deducted += amount
        deductions.append(
            {
                "expense_id": expense.id,
                "title": expense.title,
                "amount": amount,
                "approved_at": approval.created_at if approval else expense.updated_at,
                "comment": approval.comment if approval else expense.admin_comment,
            }
        )

    return {
        "profile": profile,
        "expenses": expenses,
        "audit_logs": grouped,
        "deductions": deductions,
        "total_deducted": as_decimal(total_deducted),
    }
