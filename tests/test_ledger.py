from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from voyage.core.errors import CompensationError, NotFoundError, PermissionDeniedError, ValidationError
from voyage.models.models import AuditLog, MoneyAssignment, Notification, Profile
from voyage.services import ledger


def _balance(session, profile):
    session.refresh(profile)
    return profile.balance


def test_cashier_allocation_moves_funds(db_session, workflow_users, create_profile):
    cashier = workflow_users["cashier"]
    recipient = create_profile("employee", balance="100")

    ledger.allocate_balance(db_session, cashier.user_id, recipient.user_id, Decimal("500"))

    assert _balance(db_session, cashier) == Decimal("1500.00")
    assert _balance(db_session, recipient) == Decimal("600.00")
    assignment = db_session.query(MoneyAssignment).one()
    assert assignment.cashier_id == cashier.user_id
    assert assignment.recipient_id == recipient.user_id
    assert assignment.amount == Decimal("500.00")
    assert assignment.is_returned is False

    note = db_session.query(Notification).filter(Notification.user_id == recipient.user_id).one()
    assert note.type == "balance_added"
    assert "500.00" in note.message


def test_cashier_cannot_fund_self(db_session, workflow_users):
    cashier = workflow_users["cashier"]
    with pytest.raises(PermissionDeniedError):
        ledger.allocate_balance(db_session, cashier.user_id, cashier.user_id, Decimal("100"))
    assert _balance(db_session, cashier) == Decimal("2000.00")
    assert db_session.query(MoneyAssignment).count() == 0


def test_cashier_allocation_requires_sufficient_balance(db_session, workflow_users):
    cashier = workflow_users["cashier"]
    employee = workflow_users["employee"]
    with pytest.raises(ValidationError) as excinfo:
        ledger.allocate_balance(db_session, cashier.user_id, employee.user_id, Decimal("2500"))
    assert "Insufficient balance" in excinfo.value.message
    assert _balance(db_session, cashier) == Decimal("2000.00")
    assert _balance(db_session, employee) == Decimal("5000.00")


def test_admin_allocation_does_not_debit_admin(db_session, workflow_users):
    admin = workflow_users["admin"]
    employee = workflow_users["employee"]
    ledger.allocate_balance(db_session, admin.user_id, employee.user_id, Decimal("250"))
    assert _balance(db_session, employee) == Decimal("5250.00")
    assert _balance(db_session, admin) == Decimal("0.00")
    assert db_session.query(MoneyAssignment).count() == 0


def test_allocation_rejects_non_positive_amount_and_wrong_role(db_session, workflow_users):
    with pytest.raises(ValidationError):
        ledger.allocate_balance(
            db_session, workflow_users["admin"].user_id, workflow_users["employee"].user_id, Decimal("0")
        )
    with pytest.raises(PermissionDeniedError):
        ledger.allocate_balance(
            db_session, workflow_users["engineer"].user_id, workflow_users["employee"].user_id, Decimal("10")
        )


def test_failed_target_credit_restores_cashier(db_session, workflow_users, monkeypatch):
    cashier = workflow_users["cashier"]
    employee = workflow_users["employee"]
    real_write = ledger.write_balance

    def _fail_for_target(session, profile, new_balance):
        if profile.user_id == employee.user_id:
            raise OperationalError("UPDATE profiles", {}, Exception("locked"))
        return real_write(session, profile, new_balance)

    monkeypatch.setattr(ledger, "write_balance", _fail_for_target)
    with pytest.raises(CompensationError):
        ledger.allocate_balance(db_session, cashier.user_id, employee.user_id, Decimal("300"))

    db_session.expire_all()
    assert db_session.get(Profile, cashier.user_id).balance == Decimal("2000.00")
    assert db_session.get(Profile, employee.user_id).balance == Decimal("5000.00")
    assert db_session.query(MoneyAssignment).count() == 0


def test_return_money_goes_to_original_cashier(db_session, workflow_users, create_profile):
    other_cashier = create_profile("cashier", balance="1000")
    funding_cashier = workflow_users["cashier"]
    employee = workflow_users["employee"]
    ledger.allocate_balance(db_session, funding_cashier.user_id, employee.user_id, Decimal("400"))

    outcome = ledger.return_money(db_session, employee.user_id, Decimal("150"))

    assert outcome.target_user_id == funding_cashier.user_id
    assert outcome.target_role == "cashier"
    assert outcome.new_balance == Decimal("5250.00")
    assert _balance(db_session, employee) == Decimal("5250.00")
    assert _balance(db_session, funding_cashier) == Decimal("1750.00")
    assert _balance(db_session, other_cashier) == Decimal("1000.00")

    note = db_session.query(Notification).filter(Notification.type == "balance_returned").one()
    assert note.user_id == funding_cashier.user_id


def test_return_money_consumes_oldest_assignments(db_session, workflow_users):
    cashier = workflow_users["cashier"]
    employee = workflow_users["employee"]
    now = datetime.now(timezone.utc)
    oldest = MoneyAssignment(
        cashier_id=cashier.user_id, recipient_id=employee.user_id, amount=Decimal("100"),
        assigned_at=now - timedelta(days=3),
    )
    middle = MoneyAssignment(
        cashier_id=cashier.user_id, recipient_id=employee.user_id, amount=Decimal("100"),
        assigned_at=now - timedelta(days=2),
    )
    newest = MoneyAssignment(
        cashier_id=cashier.user_id, recipient_id=employee.user_id, amount=Decimal("100"),
        assigned_at=now - timedelta(days=1),
    )
    db_session.add_all([oldest, middle, newest])
    db_session.commit()

    outcome = ledger.return_money(db_session, employee.user_id, Decimal("150"))

    assert outcome.consumed_assignment_ids == [oldest.id, middle.id]
    db_session.expire_all()
    assert oldest.is_returned is True
    assert oldest.returned_at is not None
    # The partly offset row is still marked returned.
    assert middle.is_returned is True
    assert newest.is_returned is False


def test_return_money_falls_back_to_any_cashier(db_session, workflow_users):
    employee = workflow_users["employee"]
    cashier = workflow_users["cashier"]

    outcome = ledger.return_money(db_session, employee.user_id, Decimal("500"))

    assert outcome.target_user_id == cashier.user_id
    assert _balance(db_session, cashier) == Decimal("2500.00")


def test_cashier_returns_to_admin(db_session, workflow_users):
    cashier = workflow_users["cashier"]
    admin = workflow_users["admin"]

    outcome = ledger.return_money(db_session, cashier.user_id, Decimal("700"))

    assert outcome.target_user_id == admin.user_id
    assert outcome.target_role == "admin"
    assert _balance(db_session, cashier) == Decimal("1300.00")
    assert _balance(db_session, admin) == Decimal("700.00")


def test_admin_cannot_return_money(db_session, workflow_users):
    admin = workflow_users["admin"]
    admin.balance = Decimal("100")
    db_session.commit()
    with pytest.raises(PermissionDeniedError):
        ledger.return_money(db_session, admin.user_id, Decimal("50"))


def test_return_without_any_cashier_raises_not_found(db_session, create_profile):
    employee = create_profile("employee", balance="300")
    with pytest.raises(NotFoundError):
        ledger.return_money(db_session, employee.user_id, Decimal("50"))
    assert _balance(db_session, employee) == Decimal("300.00")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("5000.01")])
def test_return_money_validates_amount(db_session, workflow_users, amount):
    employee = workflow_users["employee"]
    cashier = workflow_users["cashier"]
    with pytest.raises(ValidationError):
        ledger.return_money(db_session, employee.user_id, amount)
    assert _balance(db_session, employee) == Decimal("5000.00")
    assert _balance(db_session, cashier) == Decimal("2000.00")


def test_return_money_conserves_total(db_session, workflow_users):
    employee = workflow_users["employee"]
    cashier = workflow_users["cashier"]
    before = _balance(db_session, employee) + _balance(db_session, cashier)
    ledger.return_money(db_session, employee.user_id, Decimal("1234.56"))
    after = _balance(db_session, employee) + _balance(db_session, cashier)
    assert before == after


def test_bulk_allocation_isolates_failures(db_session, workflow_users, create_profile):
    admin = workflow_users["admin"]
    first = create_profile("employee", balance="10")
    second = create_profile("engineer", balance="20")
    bystander = create_profile("employee", balance="30")

    outcome = ledger.bulk_allocate(
        db_session, admin.user_id, [first.user_id, "ghost-user", second.user_id], Decimal("100")
    )

    assert outcome.succeeded == 2
    assert outcome.failed == 1
    assert outcome.failed_user_ids == ["ghost-user"]
    assert _balance(db_session, first) == Decimal("110.00")
    assert _balance(db_session, second) == Decimal("120.00")
    assert _balance(db_session, bystander) == Decimal("30.00")
    assert db_session.query(AuditLog).filter(AuditLog.action == "balance_bulk_allocated").count() == 1


def test_bulk_allocation_is_admin_only(db_session, workflow_users):
    with pytest.raises(PermissionDeniedError):
        ledger.bulk_allocate(
            db_session, workflow_users["cashier"].user_id, [workflow_users["employee"].user_id], Decimal("5")
        )


def test_cashier_set_balance_pays_difference(db_session, workflow_users, create_profile):
    cashier = workflow_users["cashier"]
    recipient = create_profile("employee", balance="100")

    ledger.set_balance(db_session, cashier.user_id, recipient.user_id, Decimal("400"))

    assert _balance(db_session, recipient) == Decimal("400.00")
    assert _balance(db_session, cashier) == Decimal("1700.00")
    assert db_session.query(MoneyAssignment).one().amount == Decimal("300.00")


def test_set_balance_rejects_negative(db_session, workflow_users):
    with pytest.raises(ValidationError):
        ledger.set_balance(
            db_session, workflow_users["admin"].user_id, workflow_users["employee"].user_id, Decimal("-1")
        )
