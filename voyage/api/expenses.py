from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_roles
from ..constants import ROLE_ADMIN, ROLE_ENGINEER
from ..models.models import AuditLog, Expense, Profile
from ..schemas.schemas import (
    AuditLogRead,
    ExpenseAssign,
    ExpenseCreate,
    ExpenseRead,
    ExpenseReviewAction,
    ExpenseSummary,
    ExpenseUpdate,
    ReviewQueueItem,
)
from ..services import expenses as expense_service
from ..services.system_settings import get_engineer_approval_limit
from ..utils.money import as_decimal

router = APIRouter()


@router.get("/", response_model=List[ReviewQueueItem])
def list_expenses(
    status: Optional[str] = Query(None, description="Filter by expense status."),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> List[ReviewQueueItem]:
    limit = get_engineer_approval_limit(db)
    expenses = expense_service.list_expenses(db, current_user.user_id, status=status)
    return [
        ReviewQueueItem.model_validate(expense).model_copy(
            update={"within_engineer_limit": as_decimal(expense.total_amount) <= limit}
        )
        for expense in expenses
    ]


@router.post("/", response_model=ExpenseRead, status_code=201)
def create_expense(
    payload: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> Expense:
    return expense_service.create_expense(db, current_user.user_id, payload)


@router.get("/summary", response_model=ExpenseSummary)
def expense_summary(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> ExpenseSummary:
    return expense_service.summarize_expenses(db, current_user.user_id)


@router.get("/{expense_id}", response_model=ExpenseRead)
def get_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> Expense:
    return expense_service.get_expense(db, expense_id, current_user.user_id)


@router.patch("/{expense_id}", response_model=ExpenseRead)
def update_expense(
    expense_id: str,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> Expense:
    return expense_service.update_expense(db, expense_id, current_user.user_id, payload)


@router.post("/{expense_id}/submit", response_model=ExpenseRead)
def submit_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> Expense:
    return expense_service.submit_expense(db, expense_id, current_user.user_id)


@router.post("/{expense_id}/assign", response_model=ExpenseRead)
def assign_expense(
    expense_id: str,
    payload: ExpenseAssign,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN)),
) -> Expense:
    return expense_service.assign_to_engineer(db, expense_id, payload.engineer_id, current_user.user_id)


@router.post("/{expense_id}/verify", response_model=ExpenseRead)
def verify_expense(
    expense_id: str,
    payload: ExpenseReviewAction,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ENGINEER)),
) -> Expense:
    return expense_service.verify_expense(db, expense_id, current_user.user_id, payload.comment)


@router.post("/{expense_id}/approve", response_model=ExpenseRead)
def approve_expense(
    expense_id: str,
    payload: ExpenseReviewAction,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN)),
) -> Expense:
    return expense_service.approve_expense(db, expense_id, current_user.user_id, payload.comment)


@router.post("/{expense_id}/reject", response_model=ExpenseRead)
def reject_expense(
    expense_id: str,
    payload: ExpenseReviewAction,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN)),
) -> Expense:
    return expense_service.reject_expense(db, expense_id, current_user.user_id, payload.comment)


@router.get("/{expense_id}/history", response_model=List[AuditLogRead])
def expense_history(
    expense_id: str,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> List[AuditLog]:
    return expense_service.get_expense_history(db, expense_id, current_user.user_id)
