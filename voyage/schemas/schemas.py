from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, condecimal, model_validator

RoleName = Literal["admin", "engineer", "employee", "cashier"]
ExpenseStatus = Literal["submitted", "verified", "approved", "rejected"]

PositiveAmount = condecimal(gt=0, max_digits=12, decimal_places=2)
NonNegativeAmount = condecimal(ge=0, max_digits=12, decimal_places=2)
BoundedAmount = condecimal(max_digits=12, decimal_places=2)

EXPENSE_REQUIRED_FIELDS = ("title", "destination", "trip_start", "trip_end", "category", "amount")


class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    name: str
    email: Optional[str] = None
    balance: Decimal
    reporting_engineer_id: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None


class ProfileCreate(BaseModel):
    user_id: Optional[str] = Field(default=None, max_length=36)
    name: str = Field(min_length=1)
    email: EmailStr
    role: RoleName = "employee"
    reporting_engineer_id: Optional[str] = None
    balance: NonNegativeAmount = Decimal("0")  # type: ignore[valid-type]


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[RoleName] = None
    reporting_engineer_id: Optional[str] = None


class EngineerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    name: str
    email: Optional[str] = None


class ExpenseCreate(BaseModel):
    title: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    trip_start: date
    trip_end: date
    purpose: Optional[str] = None
    amount: NonNegativeAmount  # type: ignore[valid-type]
    category: str = Field(min_length=1)

    @model_validator(mode="after")
    def check_trip_dates(self) -> "ExpenseCreate":
        if self.trip_end < self.trip_start:
            raise ValueError("Trip end date cannot be before the start date.")
        return self


class ExpenseUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    destination: Optional[str] = Field(default=None, min_length=1)
    trip_start: Optional[date] = None
    trip_end: Optional[date] = None
    purpose: Optional[str] = None
    status: Optional[ExpenseStatus] = None
    admin_comment: Optional[str] = None
    assigned_engineer_id: Optional[str] = None
    amount: Optional[NonNegativeAmount] = None  # type: ignore[valid-type]
    category: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "ExpenseUpdate":
        cleared = [
            name
            for name in EXPENSE_REQUIRED_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"Fields cannot be cleared: {', '.join(cleared)}")
        return self


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    destination: str
    trip_start: date
    trip_end: date
    purpose: Optional[str] = None
    category: str
    total_amount: Decimal
    status: ExpenseStatus
    admin_comment: Optional[str] = None
    assigned_engineer_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ReviewQueueItem(ExpenseRead):
    within_engineer_limit: bool = False


class ExpenseReviewAction(BaseModel):
    comment: Optional[str] = None


class ExpenseAssign(BaseModel):
    engineer_id: str = Field(min_length=1)


class ExpenseSummary(BaseModel):
    total: int
    submitted: int
    verified: int
    approved: int
    rejected: int
    total_amount: Decimal
    approved_amount: Decimal
    pending_amount: Decimal


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    comment: Optional[str] = None
    created_at: datetime


class AuditLogList(BaseModel):
    items: List[AuditLogRead]
    total: int


class BalanceAllocation(BaseModel):
    user_id: str = Field(min_length=1)
    amount: PositiveAmount  # type: ignore[valid-type]


class BalanceSet(BaseModel):
    balance: NonNegativeAmount  # type: ignore[valid-type]


class BulkAllocation(BaseModel):
    user_ids: List[str] = Field(min_length=1)
    amount: PositiveAmount  # type: ignore[valid-type]


class BulkAllocationResult(BaseModel):
    succeeded: int
    failed: int
    failed_user_ids: List[str] = []


class ReturnMoneyRequest(BaseModel):
    amount: BoundedAmount  # type: ignore[valid-type]


class ReturnMoneyResult(BaseModel):
    target_user_id: str
    target_name: Optional[str] = None
    target_role: RoleName
    amount: Decimal
    new_balance: Decimal


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    type: str
    title: str
    message: str
    expense_id: Optional[str] = None
    created_at: datetime
    read: bool
    read_at: Optional[datetime] = None


class ApprovalLimitRead(BaseModel):
    limit: Decimal


class ApprovalLimitUpdate(BaseModel):
    limit: Decimal


class ExpenseDeduction(BaseModel):
    expense_id: str
    title: str
    amount: Decimal
    approved_at: datetime
    comment: Optional[str] = None


class UserHistory(BaseModel):
    profile: ProfileRead
    expenses: List[ExpenseRead]
    audit_logs: Dict[str, List[AuditLogRead]]
    deductions: List[ExpenseDeduction]
    total_deducted: Decimal
