"""Balance ledger: the single authoritative ``profiles.balance`` field.

Every mutation reads the affected rows with ``SELECT ... FOR UPDATE``,
validates sufficiency, writes the new values and commits once. When a later
write in the same operation fails the transaction is rolled back, which
restores every earlier write of that operation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import ROLE_ADMIN, ROLE_CASHIER, ROLE_EMPLOYEE, ROLE_ENGINEER
from ..core.errors import CompensationError, NotFoundError, PermissionDeniedError, ValidationError
from ..models.models import MoneyAssignment, Profile
from ..utils.money import as_decimal, format_amount
from . import notifications
from .audit import audit_log
from .permissions import get_primary_role, get_profile_or_404, get_users_with_role, has_role

logger = logging.getLogger(__name__)

FUNDING_ROLES = {ROLE_CASHIER, ROLE_ADMIN}
RETURNING_TO_CASHIER_ROLES = {ROLE_EMPLOYEE, ROLE_ENGINEER}


@dataclass
class ReturnOutcome:
    target_user_id: str
    target_name: Optional[str]
    target_role: str
    amount: Decimal
    new_balance: Decimal
    consumed_assignment_ids: List[int] = field(default_factory=list)


@dataclass
class BulkAllocationOutcome:
    succeeded: int = 0
    failed_user_ids: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_user_ids)


def _positive_amount(amount, message: str = "Please enter a valid amount greater than 0") -> Decimal:
    try:
        value = as_decimal(amount)
    except ArithmeticError as exc:
        raise ValidationError(message) from exc
    if value <= 0:
        raise ValidationError(message)
    return value


def lock_profiles(session: Session, *user_ids: str) -> Dict[str, Profile]:
    """Load and row-lock profiles in a stable order; missing ids raise NotFoundError."""
    wanted = sorted(set(user_ids))
    rows = (
        session.query(Profile)
        .filter(Profile.user_id.in_(wanted))
        .order_by(Profile.user_id.asc())
        .with_for_update()
        .populate_existing()
        .all()
    )
    found = {profile.user_id: profile for profile in rows}
    for user_id in wanted:
        if user_id not in found:
            raise NotFoundError(f"Profile for user {user_id} not found")
    return found


def write_balance(session: Session, profile: Profile, new_balance: Decimal) -> Decimal:
    profile.balance = new_balance
    profile.updated_at = datetime.now(timezone.utc)
    session.flush()
    return new_balance


def debit(session: Session, profile: Profile, amount: Decimal) -> Decimal:
    return write_balance(session, profile, as_decimal(profile.balance) - amount)


def credit(session: Session, profile: Profile, amount: Decimal) -> Decimal:
    return write_balance(session, profile, as_decimal(profile.balance) + amount)


def list_balances(session: Session, caller_id: str) -> List[Profile]:
    if get_primary_role(session, caller_id) not in FUNDING_ROLES:
        raise PermissionDeniedError("You don't have permission to access balances.")
    return session.query(Profile).order_by(Profile.name.asc(), Profile.user_id.asc()).all()


def _funding_role(session: Session, caller_id: str) -> str:
    role = get_primary_role(session, caller_id)
    if role not in FUNDING_ROLES:
        raise PermissionDeniedError("Only cashiers and administrators can add balance")
    return role


def _reject_cashier_self_funding(role: str, caller_id: str, target_id: str) -> None:
    if role == ROLE_CASHIER and caller_id == target_id:
        raise PermissionDeniedError(
            "Cashiers cannot add money to their own account. "
            "Only administrators can allocate funds to cashiers."
        )


def _draw_from_cashier(session: Session, cashier: Profile, recipient_id: str, amount: Decimal) -> None:
    available = as_decimal(cashier.balance)
    if available < amount:
        raise ValidationError(
            f"Insufficient balance. You need {format_amount(amount)} but only have {format_amount(available)}"
        )
    debit(session, cashier, amount)
    session.add(
        MoneyAssignment(
            cashier_id=cashier.user_id,
            recipient_id=recipient_id,
            amount=amount,
            assigned_at=datetime.now(timezone.utc),
            is_returned=False,
        )
    )
    session.flush()


def allocate_balance(session: Session, caller_id: str, target_id: str, amount) -> Profile:
    """Add funds to ``target_id``; cashiers pay from their own balance, admins do not."""
    role = _funding_role(session, caller_id)
    amount = _positive_amount(amount)
    _reject_cashier_self_funding(role, caller_id, target_id)

    profiles = lock_profiles(session, caller_id, target_id)
    source = profiles[caller_id]
    target = profiles[target_id]
    try:
        if role == ROLE_CASHIER:
            _draw_from_cashier(session, source, target_id, amount)
        new_balance = credit(session, target, amount)
        session.commit()
    except ValidationError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Balance allocation from %s to %s failed", caller_id, target_id)
        if role == ROLE_CASHIER:
            raise CompensationError("Failed to add balance. Cashier deduction reverted.") from exc
        raise

    logger.info("%s %s allocated %s to %s (new balance %s)", role, caller_id, amount, target_id, new_balance)
    audit_log(
        session,
        caller_id,
        "balance_allocated",
        comment=f"Added {format_amount(amount)} to {target.name}. New balance: {format_amount(new_balance)}",
    )
    notifications.notify_balance_added(session, target_id, amount, source.name or role)
    return target


def set_balance(session: Session, caller_id: str, target_id: str, new_balance) -> Profile:
    """Set an absolute balance; a cashier raising it pays the difference."""
    role = _funding_role(session, caller_id)
    _reject_cashier_self_funding(role, caller_id, target_id)
    try:
        new_balance = as_decimal(new_balance)
    except ArithmeticError as exc:
        raise ValidationError("Balance must be a number") from exc
    if new_balance < 0:
        raise ValidationError("Balance cannot be negative")

    profiles = lock_profiles(session, caller_id, target_id)
    source = profiles[caller_id]
    target = profiles[target_id]
    difference = new_balance - as_decimal(target.balance)
    try:
        if role == ROLE_CASHIER and difference > 0:
            _draw_from_cashier(session, source, target_id, difference)
        write_balance(session, target, new_balance)
        session.commit()
    except ValidationError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Setting balance of %s by %s failed", target_id, caller_id)
        if role == ROLE_CASHIER and difference > 0:
            raise CompensationError("Failed to update balance. Cashier deduction reverted.") from exc
        raise

    logger.info("%s %s set balance of %s to %s", role, caller_id, target_id, new_balance)
    audit_log(
        session,
        caller_id,
        "balance_set",
        comment=f"Balance of {target.name} set to {format_amount(new_balance)}",
    )
    if difference > 0:
        notifications.notify_balance_added(session, target_id, difference, source.name or role)
    return target


def bulk_allocate(session: Session, admin_id: str, target_ids: Iterable[str], amount) -> BulkAllocationOutcome:
    """Credit every target independently; one failure never aborts the batch."""
    if not has_role(session, admin_id, ROLE_ADMIN):
        raise PermissionDeniedError("Only administrators can add balance in bulk")
    amount = _positive_amount(amount)
    admin = get_profile_or_404(session, admin_id)
    admin_name = admin.name or "Administrator"

    outcome = BulkAllocationOutcome()
    for user_id in dict.fromkeys(target_ids):
        try:
            target = lock_profiles(session, user_id)[user_id]
            credit(session, target, amount)
            session.commit()
        except (NotFoundError, SQLAlchemyError):
            session.rollback()
            logger.warning("Bulk allocation of %s to %s failed", amount, user_id, exc_info=True)
            outcome.failed_user_ids.append(user_id)
            continue
        outcome.succeeded += 1
        notifications.notify_balance_added(session, user_id, amount, admin_name)

    logger.info(
        "Admin %s bulk allocated %s: %s succeeded, %s failed",
        admin_id,
        amount,
        outcome.succeeded,
        outcome.failed,
    )
    audit_log(
        session,
        admin_id,
        "balance_bulk_allocated",
        comment=(
            f"Added {format_amount(amount)} to {outcome.succeeded} user(s), {outcome.failed} failed"
        ),
    )
    return outcome


def find_original_cashier(session: Session, recipient_id: str) -> Optional[str]:
    """Cashier of the recipient's oldest unreturned money assignment."""
    assignments = (
        session.query(MoneyAssignment)
        .filter(MoneyAssignment.recipient_id == recipient_id, MoneyAssignment.is_returned.is_(False))
        .order_by(MoneyAssignment.assigned_at.asc(), MoneyAssignment.id.asc())
        .all()
    )
    for assignment in assignments:
        if has_role(session, assignment.cashier_id, ROLE_CASHIER):
            return assignment.cashier_id
    return None


def _first_user_with_role(session: Session, role: str, exclude: str) -> Optional[str]:
    for user_id in get_users_with_role(session, role):
        if user_id != exclude:
            return user_id
    return None


def resolve_return_target(session: Session, caller_id: str, caller_role: Optional[str]) -> tuple[str, str]:
    if caller_role in RETURNING_TO_CASHIER_ROLES:
        target_role = ROLE_CASHIER
        target_id = find_original_cashier(session, caller_id)
        if target_id is None:
            logger.info("No money assignment on record for %s; returning to any cashier", caller_id)
            target_id = _first_user_with_role(session, ROLE_CASHIER, exclude=caller_id)
    elif caller_role == ROLE_CASHIER:
        target_role = ROLE_ADMIN
        target_id = _first_user_with_role(session, ROLE_ADMIN, exclude=caller_id)
    else:
        raise PermissionDeniedError("Invalid role for returning money")

    if target_id is None:
        raise NotFoundError(f"No {target_role} found in the system. Please contact an administrator.")
    return target_id, target_role


def consume_money_assignments(session: Session, recipient_id: str, cashier_id: str, amount: Decimal) -> List[int]:
    """Mark the oldest unreturned assignments as returned until ``amount`` is covered.

    A row that is only partly offset is still marked returned.
    """
    remaining = amount
    consumed: List[int] = []
    assignments = (
        session.query(MoneyAssignment)
        .filter(
            MoneyAssignment.recipient_id == recipient_id,
            MoneyAssignment.cashier_id == cashier_id,
            MoneyAssignment.is_returned.is_(False),
        )
        .order_by(MoneyAssignment.assigned_at.asc(), MoneyAssignment.id.asc())
        .all()
    )
    now = datetime.now(timezone.utc)
    for assignment in assignments:
        if remaining <= 0:
            break
        assignment.is_returned = True
        assignment.returned_at = now
        remaining -= min(as_decimal(assignment.amount), remaining)
        consumed.append(assignment.id)
    session.flush()
    return consumed


def return_money(session: Session, caller_id: str, amount) -> ReturnOutcome:
    """Move funds back up the chain: employees/engineers to a cashier, cashiers to an admin."""
    amount = _positive_amount(amount)
    caller = get_profile_or_404(session, caller_id)
    available = as_decimal(caller.balance)
    if amount > available:
        raise ValidationError(
            f"Insufficient balance. You only have {format_amount(available)}. Cannot return {format_amount(amount)}"
        )

    caller_role = get_primary_role(session, caller_id)
    target_id, target_role = resolve_return_target(session, caller_id, caller_role)

    profiles = lock_profiles(session, caller_id, target_id)
    caller = profiles[caller_id]
    target = profiles[target_id]
    available = as_decimal(caller.balance)
    if amount > available:
        session.rollback()
        raise ValidationError(
            f"Insufficient balance. You only have {format_amount(available)}. Cannot return {format_amount(amount)}"
        )

    consumed: List[int] = []
    try:
        new_balance = debit(session, caller, amount)
        credit(session, target, amount)
        if target_role == ROLE_CASHIER:
            consumed = consume_money_assignments(session, caller_id, target_id, amount)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Returning %s from %s to %s failed", amount, caller_id, target_id)
        raise CompensationError("Failed to return money. No balances were changed.") from exc

    logger.info("%s returned %s to %s %s", caller_id, amount, target_role, target_id)
    audit_log(
        session,
        caller_id,
        "balance_returned",
        comment=(
            f"Returned {format_amount(amount)} to {target.name or target_role}. "
            f"New balance: {format_amount(new_balance)}"
        ),
    )
    notifications.notify_balance_returned(session, target_id, amount, caller.name or caller_role or "A user")
    return ReturnOutcome(
        target_user_id=target_id,
        target_name=target.name,
        target_role=target_role,
        amount=amount,
        new_balance=new_balance,
        consumed_assignment_ids=consumed,
    )
