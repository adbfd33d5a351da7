import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import DEFAULT_SETTINGS, ENGINEER_APPROVAL_LIMIT_KEY
from ..core.errors import ValidationError
from ..models.models import Setting
from ..utils.money import as_decimal

logger = logging.getLogger(__name__)


def get_setting(session: Session, key: str) -> Optional[Setting]:
    return session.get(Setting, key)


def upsert_setting(session: Session, key: str, value: str, description: Optional[str] = None) -> Setting:
    setting = session.get(Setting, key)
    if setting is None:
        setting = Setting(key=key)
        session.add(setting)
    setting.value = value
    if description is not None:
        setting.description = description
    setting.updated_at = datetime.now(timezone.utc)
    session.commit()
    return setting


def get_engineer_approval_limit(session: Session) -> Decimal:
    setting = get_setting(session, ENGINEER_APPROVAL_LIMIT_KEY)
    if setting is None:
        return as_decimal(settings.default_engineer_approval_limit)
    try:
        return as_decimal(Decimal(setting.value))
    except InvalidOperation:
        logger.error("Invalid %s value %r; using default", ENGINEER_APPROVAL_LIMIT_KEY, setting.value)
        return as_decimal(settings.default_engineer_approval_limit)


def set_engineer_approval_limit(session: Session, value) -> Decimal:
    try:
        limit = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("Please enter a valid positive number") from exc
    if not limit.is_finite() or limit < 0:
        raise ValidationError("Please enter a valid positive number")
    limit = as_decimal(limit)
    upsert_setting(
        session,
        ENGINEER_APPROVAL_LIMIT_KEY,
        str(limit),
        DEFAULT_SETTINGS[ENGINEER_APPROVAL_LIMIT_KEY]["description"],
    )
    return limit


def within_engineer_limit(session: Session, amount) -> bool:
    """Routing hint for callers; the lifecycle transitions do not consult it."""
    return as_decimal(amount) <= get_engineer_approval_limit(session)


def ensure_default_settings(session: Session) -> None:
    if get_setting(session, ENGINEER_APPROVAL_LIMIT_KEY) is None:
        upsert_setting(
            session,
            ENGINEER_APPROVAL_LIMIT_KEY,
            str(as_decimal(settings.default_engineer_approval_limit)),
            DEFAULT_SETTINGS[ENGINEER_APPROVAL_LIMIT_KEY]["description"],
        )
