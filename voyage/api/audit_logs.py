from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_roles
from ..constants import ROLE_ADMIN
from ..models.models import AuditLog, Profile
from ..schemas.schemas import AuditLogList, AuditLogRead

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("/", response_model=AuditLogList)
def list_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    action: Optional[str] = Query(None),
    expense_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_roles(ROLE_ADMIN)),
) -> AuditLogList:
    query = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if action:
        query = query.filter(AuditLog.action == action)
    if expense_id:
        query = query.filter(AuditLog.expense_id == expense_id)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    total = query.count()
    logs = query.offset(offset).limit(limit).all()
    return AuditLogList(items=[AuditLogRead.model_validate(entry) for entry in logs], total=total)
