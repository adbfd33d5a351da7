import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import AuditLog

logger = logging.getLogger(__name__)


def audit_log(
    db_session: Session,
    user_id: Optional[str],
    action: str,
    expense_id: Optional[str] = None,
    comment: Optional[str] = None,
) -> Optional[AuditLog]:
    """Append an audit entry after the primary write has committed.

    Failures are logged and swallowed; the caller's operation has already
    succeeded and must not be undone by a missing log row.
    """
    entry = AuditLog(
        expense_id=expense_id,
        user_id=user_id,
        action=action,
        comment=comment or None,
        created_at=datetime.now(timezone.utc),
    )
    try:
        db_session.add(entry)
        db_session.commit()
    except SQLAlchemyError:
        db_session.rollback()
        logger.exception("Failed to write audit log %s for expense %s", action, expense_id)
        return None
    return entry
