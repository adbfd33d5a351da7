from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_roles
from ..constants import ROLE_ADMIN
from ..models.models import Profile
from ..schemas.schemas import ApprovalLimitRead, ApprovalLimitUpdate
from ..services import system_settings
from ..services.audit import audit_log
from ..utils.money import format_amount

router = APIRouter()

require_admin = require_roles(ROLE_ADMIN)


@router.get("/engineer-approval-limit", response_model=ApprovalLimitRead)
def get_engineer_approval_limit(
    db: Session = Depends(get_db),
    _: Profile = Depends(get_current_user),
) -> ApprovalLimitRead:
    return ApprovalLimitRead(limit=system_settings.get_engineer_approval_limit(db))


@router.put("/engineer-approval-limit", response_model=ApprovalLimitRead)
def update_engineer_approval_limit(
    payload: ApprovalLimitUpdate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_admin),
) -> ApprovalLimitRead:
    limit = system_settings.set_engineer_approval_limit(db, payload.limit)
    audit_log(
        db,
        current_user.user_id,
        "setting_updated",
        comment=f"Engineer approval limit set to {format_amount(limit)}",
    )
    return ApprovalLimitRead(limit=limit)
