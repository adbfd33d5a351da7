from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_roles
from ..constants import ROLE_ADMIN, ROLE_CASHIER
from ..models.models import Profile
from ..schemas.schemas import (
    BalanceAllocation,
    BalanceSet,
    BulkAllocation,
    BulkAllocationResult,
    ProfileRead,
    ReturnMoneyRequest,
    ReturnMoneyResult,
)
from ..services import ledger

router = APIRouter()


@router.get("/", response_model=List[ProfileRead])
def list_balances(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN, ROLE_CASHIER)),
) -> List[Profile]:
    return ledger.list_balances(db, current_user.user_id)


@router.get("/me", response_model=ProfileRead)
def my_balance(current_user: Profile = Depends(get_current_user)) -> Profile:
    return current_user


@router.post("/allocate", response_model=ProfileRead)
def allocate_balance(
    payload: BalanceAllocation,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN, ROLE_CASHIER)),
) -> Profile:
    return ledger.allocate_balance(db, current_user.user_id, payload.user_id, payload.amount)


@router.post("/bulk-allocate", response_model=BulkAllocationResult)
def bulk_allocate(
    payload: BulkAllocation,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN)),
) -> BulkAllocationResult:
    outcome = ledger.bulk_allocate(db, current_user.user_id, payload.user_ids, payload.amount)
    return BulkAllocationResult(
        succeeded=outcome.succeeded,
        failed=outcome.failed,
        failed_user_ids=outcome.failed_user_ids,
    )


@router.put("/{user_id}", response_model=ProfileRead)
def set_balance(
    user_id: str,
    payload: BalanceSet,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_roles(ROLE_ADMIN, ROLE_CASHIER)),
) -> Profile:
    return ledger.set_balance(db, current_user.user_id, user_id, payload.balance)


@router.post("/return", response_model=ReturnMoneyResult)
def return_money(
    payload: ReturnMoneyRequest,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> ReturnMoneyResult:
    outcome = ledger.return_money(db, current_user.user_id, payload.amount)
    return ReturnMoneyResult(
        target_user_id=outcome.target_user_id,
        target_name=outcome.target_name,
        target_role=outcome.target_role,
        amount=outcome.amount,
        new_balance=outcome.new_balance,
    )
