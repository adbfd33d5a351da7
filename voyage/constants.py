from typing import Dict, Set

ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"
ROLE_ENGINEER = "engineer"
ROLE_EMPLOYEE = "employee"

# Higher number means more privileges
ROLE_PRIORITY = {
    ROLE_EMPLOYEE: 10,
    ROLE_ENGINEER: 20,
    ROLE_CASHIER: 30,
    ROLE_ADMIN: 100,
}

STATUS_SUBMITTED = "submitted"
STATUS_VERIFIED = "verified"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

EXPENSE_STATUSES = [STATUS_SUBMITTED, STATUS_VERIFIED, STATUS_APPROVED, STATUS_REJECTED]

TERMINAL_STATUSES = {STATUS_APPROVED, STATUS_REJECTED}

ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    STATUS_SUBMITTED: {STATUS_SUBMITTED, STATUS_VERIFIED, STATUS_REJECTED},
    STATUS_VERIFIED: {STATUS_APPROVED, STATUS_REJECTED, STATUS_SUBMITTED},
    STATUS_APPROVED: set(),
    STATUS_REJECTED: set(),
}

ENGINEER_APPROVAL_LIMIT_KEY = "engineer_approval_limit"

DEFAULT_SETTINGS = {
    ENGINEER_APPROVAL_LIMIT_KEY: {
        "description": (
            "Maximum amount that engineers can approve directly. Expenses below this limit "
            "can be approved by engineers, above this limit must go to admin."
        ),
    },
}
