from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import ROLE_ADMIN
from ..models.models import Expense, Notification, UserRole
from ..utils.money import format_amount

logger = logging.getLogger(__name__)

EXPENSE_SUBMITTED = "expense_submitted"
EXPENSE_ASSIGNED = "expense_assigned"
EXPENSE_VERIFIED = "expense_verified"
EXPENSE_APPROVED = "expense_approved"
EXPENSE_REJECTED = "expense_rejected"
BALANCE_ADDED = "balance_added"
BALANCE_RETURNED = "balance_returned"


def _resolve_recipient_ids(
    session: Session,
    user_ids: Optional[Iterable[str]] = None,
    role_names: Optional[Iterable[str]] = None,
) -> List[str]:
    recipients: Set[str] = set()
    if user_ids:
        recipients.update(user_ids)

    if role_names:
        role_names = list(role_names)
        if role_names:
            query = session.query(UserRole.user_id).filter(UserRole.role.in_(role_names)).distinct()
            for row in query:
                recipients.add(row[0])

    recipients.discard(None)
    recipients.discard("")
    return sorted(recipients)


def create_notification(
    session: Session,
    *,
    type: str,
    title: str,
    message: str,
    expense_id: Optional[str] = None,
    user_ids: Optional[Iterable[str]] = None,
    role_names: Optional[Iterable[str]] = None,
) -> List[Notification]:
    """Best-effort insert of one notification per recipient.

    Notifications are non-critical: a failure is logged and an empty list is
    returned instead of raising.
    """
    try:
        recipient_ids = _resolve_recipient_ids(session, user_ids=user_ids, role_names=role_names)
        if not recipient_ids:
            return []

        notifications: List[Notification] = []
        now = datetime.now(timezone.utc)
        for recipient_id in recipient_ids:
            notification = Notification(
                user_id=recipient_id,
                type=type,
                title=title,
                message=message,
                expense_id=expense_id,
                created_at=now,
                read=False,
            )
            session.add(notification)
            notifications.append(notification)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to create %s notification", type)
        return []
    return notifications


def notify_expense_submitted(session: Session, expense: Expense, employee_name: str) -> None:
    create_notification(
        session,
        type=EXPENSE_SUBMITTED,
        title="New Expense Claim",
        message=f'{employee_name} has submitted a new expense: "{expense.title}"',
        expense_id=expense.id,
        user_ids=[expense.assigned_engineer_id],
    )


def notify_expense_assigned(session: Session, expense: Expense, admin_name: str) -> None:
    create_notification(
        session,
        type=EXPENSE_ASSIGNED,
        title="Expense Assigned",
        message=f'{admin_name} assigned the expense "{expense.title}" to you for review',
        expense_id=expense.id,
        user_ids=[expense.assigned_engineer_id],
    )


def notify_expense_verified(session: Session, expense: Expense, engineer_name: str) -> None:
    create_notification(
        session,
        type=EXPENSE_VERIFIED,
        title="Expense Verified",
        message=f'Your expense "{expense.title}" has been verified by {engineer_name}',
        expense_id=expense.id,
        user_ids=[expense.user_id],
    )
    create_notification(
        session,
        type=EXPENSE_VERIFIED,
        title="Expense Awaiting Approval",
        message=f'"{expense.title}" ({format_amount(expense.total_amount)}) was verified by {engineer_name}',
        expense_id=expense.id,
        role_names=[ROLE_ADMIN],
    )


def notify_expense_approved(session: Session, expense: Expense, approver_name: str) -> None:
    create_notification(
        session,
        type=EXPENSE_APPROVED,
        title="Expense Approved",
        message=(
            f'Your expense "{expense.title}" ({format_amount(expense.total_amount)}) '
            f"has been approved by {approver_name}"
        ),
        expense_id=expense.id,
        user_ids=[expense.user_id],
    )


def notify_expense_rejected(session: Session, expense: Expense, admin_name: str) -> None:
    message = f'Your expense "{expense.title}" has been rejected by {admin_name}'
    if expense.admin_comment:
        message += f": {expense.admin_comment}"
    create_notification(
        session,
        type=EXPENSE_REJECTED,
        title="Expense Rejected",
        message=message,
        expense_id=expense.id,
        user_ids=[expense.user_id],
    )


def notify_balance_added(session: Session, user_id: str, amount: Decimal, sender_name: str) -> None:
    create_notification(
        session,
        type=BALANCE_ADDED,
        title="Balance Added",
        message=f"{sender_name} has added {format_amount(amount)} to your account",
        user_ids=[user_id],
    )


def notify_balance_returned(session: Session, user_id: str, amount: Decimal, sender_name: str) -> None:
    create_notification(
        session,
        type=BALANCE_RETURNED,
        title="Money Returned",
        message=f"{sender_name} has returned {format_amount(amount)} to your account",
        user_ids=[user_id],
    )
