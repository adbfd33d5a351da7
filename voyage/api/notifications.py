from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..models.models import Notification, Profile
from ..schemas.schemas import NotificationRead

router = APIRouter()


@router.get("/", response_model=List[NotificationRead])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    include_read: bool = Query(True),
    types: Optional[List[str]] = Query(None, description="Filter by notification type."),
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> List[Notification]:
    query = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    if not include_read:
        query = query.filter(Notification.read.is_(False))
    if types:
        normalized_types = sorted({entry.lower() for entry in types if entry})
        if normalized_types:
            query = query.filter(Notification.type.in_(normalized_types))
    return query.limit(limit).all()


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.user_id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found.")
    if not notification.read:
        notification.read = True
        notification.read_at = datetime.now(timezone.utc)
        db.add(notification)
        db.commit()
        db.refresh(notification)
    return notification


@router.post("/read-all", response_model=dict)
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
) -> dict:
    unread_notifications = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.user_id, Notification.read.is_(False))
        .all()
    )
    if not unread_notifications:
        return {"updated": 0}
    timestamp = datetime.now(timezone.utc)
    for notification in unread_notifications:
        notification.read = True
        notification.read_at = timestamp
        db.add(notification)
    db.commit()
    return {"updated": len(unread_notifications)}
