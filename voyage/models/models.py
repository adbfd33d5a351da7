import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import ROLE_PRIORITY, STATUS_SUBMITTED


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, index=True, nullable=True)
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    reporting_engineer_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="SET NULL"), nullable=True)
    notification_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    roles = orm_relationship("UserRole", back_populates="profile", cascade="all, delete-orphan")
    reporting_engineer = orm_relationship("Profile", remote_side=[user_id])
    expenses = orm_relationship(
        "Expense",
        back_populates="owner",
        foreign_keys="Expense.user_id",
        cascade="all, delete-orphan",
    )
    notifications = orm_relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def role_names(self) -> list[str]:
        return [entry.role for entry in self.roles]

    @property
    def role(self):
        return self.highest_priority_role

    def has_role(self, role_name: str) -> bool:
        return any(entry.role == role_name for entry in self.roles)

    def has_any_role(self, *role_names: str) -> bool:
        targets = set(role_names)
        if not targets:
            return False
        return any(entry.role in targets for entry in self.roles)

    @property
    def highest_priority_role(self):
        if not self.roles:
            return None
        return max(self.role_names, key=lambda name: ROLE_PRIORITY.get(name, 0))


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True)
    role = Column(String(32), primary_key=True)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)

    profile = orm_relationship("Profile", back_populates="roles")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    destination = Column(String, nullable=False)
    trip_start = Column(Date, nullable=False)
    trip_end = Column(Date, nullable=False)
    purpose = Column(Text, nullable=True)
    category = Column(String, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status = Column(String(32), nullable=False, default=STATUS_SUBMITTED, index=True)
    admin_comment = Column(Text, nullable=True)
    assigned_engineer_id = Column(
        String(36), ForeignKey("profiles.user_id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = orm_relationship("Profile", back_populates="expenses", foreign_keys=[user_id])
    assigned_engineer = orm_relationship("Profile", foreign_keys=[assigned_engineer_id])
    audit_logs = orm_relationship(
        "AuditLog", back_populates="expense", order_by="AuditLog.created_at", passive_deletes=True
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(String(36), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    action = Column(String, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True, nullable=False)

    expense = orm_relationship("Expense", back_populates="audit_logs")


class MoneyAssignment(Base):
    __tablename__ = "money_assignments"

    id = Column(Integer, primary_key=True, index=True)
    cashier_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)
    is_returned = Column(Boolean, default=False, nullable=False)
    returned_at = Column(DateTime, nullable=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(64), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    expense_id = Column(String(36), ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    user = orm_relationship("Profile", back_populates="notifications")


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(128), primary_key=True)
    value = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
