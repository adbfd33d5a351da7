"""Expense lifecycle: submitted -> verified -> approved, with rejection.

Transitions are validated against ``ALLOWED_TRANSITIONS``. Audit entries and
notifications are written after the transition has committed; their failures
never undo a transition.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    ALLOWED_TRANSITIONS,
    EXPENSE_STATUSES,
    ROLE_ADMIN,
    ROLE_ENGINEER,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_SUBMITTED,
    STATUS_VERIFIED,
    TERMINAL_STATUSES,
)
from ..core.errors import (
    CompensationError,
    NotFoundError,
    PermissionDeniedError,
    StateTransitionError,
    ValidationError,
)
from ..models.models import AuditLog, Expense, Profile
from ..schemas.schemas import EXPENSE_REQUIRED_FIELDS, ExpenseCreate, ExpenseSummary, ExpenseUpdate
from ..utils.money import as_decimal, format_amount
from . import ledger, notifications
from .audit import audit_log
from .permissions import (
    can_engineer_review,
    can_user_edit,
    get_expense_or_404,
    get_profile_or_404,
    has_role,
    require_role,
)

logger = logging.getLogger(__name__)


def _display_name(session: Session, user_id: Optional[str], fallback: str) -> str:
    profile = session.get(Profile, user_id) if user_id else None
    if profile is None or not profile.name:
        return fallback
    return profile.name


def _ensure_transition(current: str, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise StateTransitionError(f"Cannot move an expense from {current} to {target}")


def _lock_expense(session: Session, expense_id: str) -> Expense:
    expense = (
        session.query(Expense)
        .filter(Expense.id == expense_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found")
    return expense


def _touch(expense: Expense) -> None:
    expense.updated_at = datetime.now(timezone.utc)


def create_expense(session: Session, owner_id: str, data: ExpenseCreate) -> Expense:
    get_profile_or_404(session, owner_id)
    expense = Expense(
        user_id=owner_id,
        title=data.title,
        destination=data.destination,
        trip_start=data.trip_start,
        trip_end=data.trip_end,
        purpose=data.purpose,
        category=data.category,
        total_amount=as_decimal(data.amount),
        status=STATUS_SUBMITTED,
    )
    session.add(expense)
    session.commit()
    session.refresh(expense)
    logger.info("Expense %s created by %s for %s", expense.id, owner_id, expense.total_amount)
    audit_log(session, owner_id, "expense_created", expense_id=expense.id)
    return expense


def update_expense(session: Session, expense_id: str, caller_id: str, patch: ExpenseUpdate) -> Expense:
    expense = get_expense_or_404(session, expense_id)
    if not can_user_edit(session, expense, caller_id):
        raise PermissionDeniedError("You don't have permission to edit this expense")
    if expense.status in TERMINAL_STATUSES:
        raise StateTransitionError(f"Cannot edit an expense that is already {expense.status}")

    changes = patch.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    if new_status is None and expense.status != STATUS_SUBMITTED:
        raise StateTransitionError("Only submitted expenses can be edited")
    if new_status is not None:
        if not has_role(session, caller_id, ROLE_ADMIN):
            raise PermissionDeniedError("Only administrators can change the status of an expense")
        if new_status == STATUS_APPROVED:
            raise StateTransitionError("Use the approve action to approve an expense")
        _ensure_transition(expense.status, new_status)

    cleared = [name for name in EXPENSE_REQUIRED_FIELDS if name in changes and changes[name] is None]
    if cleared:
        raise ValidationError(f"Fields cannot be cleared: {', '.join(cleared)}")

    engineer_id = changes.get("assigned_engineer_id")
    if engineer_id and not has_role(session, engineer_id, ROLE_ENGINEER):
        raise ValidationError("Assigned user is not an engineer")

    trip_start = changes.get("trip_start", expense.trip_start)
    trip_end = changes.get("trip_end", expense.trip_end)
    if trip_end < trip_start:
        raise ValidationError("Trip end date cannot be before the start date.")

    amount = changes.pop("amount", None)
    if amount is not None:
        expense.total_amount = as_decimal(amount)
    for field, value in changes.items():
        setattr(expense, field, value)

    previous_status = expense.status
    if new_status is not None:
        expense.status = new_status
    _touch(expense)
    session.commit()
    session.refresh(expense)

    if new_status is not None and new_status != previous_status:
        action = f"status_changed_to_{new_status}"
    else:
        action = "expense_updated"
    logger.info("Expense %s updated by %s (%s)", expense.id, caller_id, action)
    audit_log(session, caller_id, action, expense_id=expense.id, comment=changes.get("admin_comment"))
    return expense


def submit_expense(session: Session, expense_id: str, caller_id: str) -> Expense:
    """Route a submitted expense to the submitting user's reporting engineer."""
    expense = get_expense_or_404(session, expense_id)
    if not can_user_edit(session, expense, caller_id):
        raise PermissionDeniedError("You don't have permission to submit this expense")
    if expense.status != STATUS_SUBMITTED:
        raise StateTransitionError("Only expenses in submitted status can be submitted")

    submitter = get_profile_or_404(session, caller_id)
    if not submitter.reporting_engineer_id:
        raise ValidationError(
            "No reporting engineer is assigned to your profile. Please contact an administrator."
        )

    expense.assigned_engineer_id = submitter.reporting_engineer_id
    _touch(expense)
    session.commit()
    session.refresh(expense)

    logger.info("Expense %s submitted to engineer %s", expense.id, expense.assigned_engineer_id)
    audit_log(session, caller_id, "expense_submitted", expense_id=expense.id)
    notifications.notify_expense_submitted(session, expense, submitter.name or "An employee")
    return expense


def assign_to_engineer(session: Session, expense_id: str, engineer_id: str, admin_id: str) -> Expense:
    require_role(session, admin_id, ROLE_ADMIN, "Only administrators can assign expenses")
    require_role(session, engineer_id, ROLE_ENGINEER, "Expenses can only be assigned to engineers")
    expense = get_expense_or_404(session, expense_id)
    if expense.status in TERMINAL_STATUSES:
        raise StateTransitionError(f"Cannot reassign an expense that is already {expense.status}")
    _ensure_transition(expense.status, STATUS_SUBMITTED)

    expense.assigned_engineer_id = engineer_id
    expense.status = STATUS_SUBMITTED
    _touch(expense)
    session.commit()
    session.refresh(expense)

    logger.info("Expense %s assigned to engineer %s by %s", expense.id, engineer_id, admin_id)
    audit_log(session, admin_id, "expense_assigned", expense_id=expense.id)
    notifications.notify_expense_assigned(
        session, expense, _display_name(session, admin_id, "An administrator")
    )
    return expense


def verify_expense(session: Session, expense_id: str, engineer_id: str, comment: Optional[str] = None) -> Expense:
    expense = get_expense_or_404(session, expense_id)
    if not can_engineer_review(expense, engineer_id):
        raise PermissionDeniedError("You are not assigned to review this expense")
    if expense.status == STATUS_APPROVED:
        raise StateTransitionError("Expense is already approved")
    if expense.status != STATUS_SUBMITTED:
        raise StateTransitionError("Only submitted expenses can be verified")

    expense.status = STATUS_VERIFIED
    _touch(expense)
    session.commit()
    session.refresh(expense)

    logger.info("Expense %s verified by %s", expense.id, engineer_id)
    audit_log(session, engineer_id, "expense_verified", expense_id=expense.id, comment=comment)
    notifications.notify_expense_verified(
        session, expense, _display_name(session, engineer_id, "An engineer")
    )
    return expense


def _restore_status(session: Session, expense_id: str, status: str) -> None:
    expense = session.get(Expense, expense_id)
    if expense is None or expense.status == status:
        return
    expense.status = status
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Could not restore expense %s to %s", expense_id, status)


def approve_expense(session: Session, expense_id: str, admin_id: str, comment: Optional[str] = None) -> Expense:
    """Approve a verified expense and deduct its amount from the owner's balance.

    The status change and the deduction share one transaction. If the
    deduction fails the transaction is rolled back, the expense is confirmed
    to be back at ``verified`` and ``CompensationError`` is raised.
    """
    require_role(session, admin_id, ROLE_ADMIN, "Only administrators can approve expenses")
    expense = _lock_expense(session, expense_id)
    if expense.status == STATUS_APPROVED:
        raise StateTransitionError("Expense is already approved")
    if expense.status != STATUS_VERIFIED:
        raise StateTransitionError("Expense must be verified by an engineer before approval")

    owner = ledger.lock_profiles(session, expense.user_id)[expense.user_id]
    amount = as_decimal(expense.total_amount)
    current_balance = as_decimal(owner.balance)
    if current_balance < amount:
        session.rollback()
        raise ValidationError(
            f"Insufficient balance. Employee {owner.name} has {format_amount(current_balance)} "
            f"but expense requires {format_amount(amount)}"
        )

    expense.status = STATUS_APPROVED
    expense.admin_comment = comment
    _touch(expense)
    session.flush()
    try:
        new_balance = ledger.debit(session, owner, amount)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Balance deduction for expense %s failed; reverting approval", expense_id)
        _restore_status(session, expense_id, STATUS_VERIFIED)
        raise CompensationError("Failed to deduct balance. Expense approval reverted.") from exc
    session.refresh(expense)

    logger.info(
        "Expense %s approved by %s; deducted %s from %s, remaining %s",
        expense.id,
        admin_id,
        amount,
        expense.user_id,
        new_balance,
    )
    audit_log(
        session,
        admin_id,
        "expense_approved",
        expense_id=expense.id,
        comment=(
            f"{comment or ''} Balance deducted: {format_amount(amount)}. "
            f"Remaining balance: {format_amount(new_balance)}"
        ).strip(),
    )
    notifications.notify_expense_approved(
        session, expense, _display_name(session, admin_id, "An administrator")
    )
    return expense


def reject_expense(session: Session, expense_id: str, admin_id: str, comment: Optional[str] = None) -> Expense:
    require_role(session, admin_id, ROLE_ADMIN, "Only administrators can reject expenses")
    expense = get_expense_or_404(session, expense_id)
    if expense.status == STATUS_REJECTED:
        raise StateTransitionError("Expense is already rejected")
    if expense.status == STATUS_APPROVED and not settings.allow_reject_approved:
        raise StateTransitionError("Approved expenses cannot be rejected")

    expense.status = STATUS_REJECTED
    expense.admin_comment = comment
    _touch(expense)
    session.commit()
    session.refresh(expense)

    logger.info("Expense %s rejected by %s", expense.id, admin_id)
    audit_log(session, admin_id, "expense_rejected", expense_id=expense.id, comment=comment)
    notifications.notify_expense_rejected(
        session, expense, _display_name(session, admin_id, "An administrator")
    )
    return expense


def get_expense(session: Session, expense_id: str, caller_id: str) -> Expense:
    expense = get_expense_or_404(session, expense_id)
    if (
        expense.user_id == caller_id
        or can_engineer_review(expense, caller_id)
        or has_role(session, caller_id, ROLE_ADMIN)
    ):
        return expense
    raise PermissionDeniedError("You don't have permission to view this expense")


def list_expenses(session: Session, caller_id: str, status: Optional[str] = None) -> List[Expense]:
    query = session.query(Expense)
    if has_role(session, caller_id, ROLE_ADMIN):
        pass
    elif has_role(session, caller_id, ROLE_ENGINEER):
        query = query.filter(or_(Expense.user_id == caller_id, Expense.assigned_engineer_id == caller_id))
    else:
        query = query.filter(Expense.user_id == caller_id)

    if status:
        if status not in EXPENSE_STATUSES:
            raise ValidationError(f"Unknown expense status '{status}'")
        query = query.filter(Expense.status == status)
    return query.order_by(Expense.created_at.desc(), Expense.id.asc()).all()


def summarize_expenses(session: Session, caller_id: str) -> ExpenseSummary:
    counts: Dict[str, int] = {status: 0 for status in EXPENSE_STATUSES}
    total_amount = Decimal("0")
    approved_amount = Decimal("0")
    pending_amount = Decimal("0")
    for expense in list_expenses(session, caller_id):
        amount = as_decimal(expense.total_amount)
        counts[expense.status] = counts.get(expense.status, 0) + 1
        total_amount += amount
        if expense.status == STATUS_APPROVED:
            approved_amount += amount
        elif expense.status in (STATUS_SUBMITTED, STATUS_VERIFIED):
            pending_amount += amount
    return ExpenseSummary(
        total=sum(counts.values()),
        submitted=counts[STATUS_SUBMITTED],
        verified=counts[STATUS_VERIFIED],
        approved=counts[STATUS_APPROVED],
        rejected=counts[STATUS_REJECTED],
        total_amount=as_decimal(total_amount),
        approved_amount=as_decimal(approved_amount),
        pending_amount=as_decimal(pending_amount),
    )


def get_expense_history(session: Session, expense_id: str, caller_id: str) -> List[AuditLog]:
    expense = get_expense(session, expense_id, caller_id)
    return (
        session.query(AuditLog)
        .filter(AuditLog.expense_id == expense.id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
