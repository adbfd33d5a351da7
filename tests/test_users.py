from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from voyage.api.dependencies import get_db
from voyage.auth.jwt import get_current_user
from voyage.core.errors import PermissionDeniedError, ValidationError
from voyage.main import app
from voyage.models.models import Profile, UserRole
from voyage.schemas.schemas import ProfileCreate, ProfileUpdate
from voyage.services import expenses as expense_service
from voyage.services import users as user_service


def _override_get_db(session):
    def _generator():
        try:
            yield session
        finally:
            pass

    return _generator


def _override_user(user):
    def _provider():
        return user

    return _provider


def test_create_user_with_reporting_engineer(db_session, workflow_users):
    admin = workflow_users["admin"]
    engineer = workflow_users["engineer"]
    profile = user_service.create_user(
        db_session,
        admin.user_id,
        ProfileCreate(
            name="New Hire",
            email="hire@example.com",
            role="employee",
            reporting_engineer_id=engineer.user_id,
        ),
    )
    assert profile.role == "employee"
    assert profile.reporting_engineer_id == engineer.user_id
    assert profile.balance == Decimal("0.00")


def test_reporting_engineer_is_dropped_for_non_employees(db_session, workflow_users):
    profile = user_service.create_user(
        db_session,
        workflow_users["admin"].user_id,
        ProfileCreate(
            name="Second Cashier",
            email="cash2@example.com",
            role="cashier",
            reporting_engineer_id=workflow_users["engineer"].user_id,
        ),
    )
    assert profile.reporting_engineer_id is None


def test_reporting_engineer_must_be_engineer(db_session, workflow_users):
    with pytest.raises(ValidationError):
        user_service.create_user(
            db_session,
            workflow_users["admin"].user_id,
            ProfileCreate(
                name="Bad Link",
                email="bad@example.com",
                reporting_engineer_id=workflow_users["cashier"].user_id,
            ),
        )


def test_duplicate_email_is_rejected(db_session, workflow_users):
    existing = workflow_users["employee"].email
    with pytest.raises(ValidationError):
        user_service.create_user(
            db_session,
            workflow_users["admin"].user_id,
            ProfileCreate(name="Copy", email=existing.upper()),
        )


def test_only_admin_manages_users(db_session, workflow_users):
    with pytest.raises(PermissionDeniedError):
        user_service.create_user(
            db_session,
            workflow_users["cashier"].user_id,
            ProfileCreate(name="Nope", email="nope@example.com"),
        )


def test_role_change_replaces_assignment(db_session, workflow_users):
    employee = workflow_users["employee"]
    profile = user_service.update_user(
        db_session, workflow_users["admin"].user_id, employee.user_id, ProfileUpdate(role="engineer")
    )
    assert profile.role_names == ["engineer"]
    assert profile.reporting_engineer_id is None
    assert db_session.query(UserRole).filter(UserRole.user_id == employee.user_id).count() == 1


def test_delete_user_clears_references(db_session, workflow_users, create_expense):
    admin = workflow_users["admin"]
    engineer = workflow_users["engineer"]
    employee = workflow_users["employee"]
    expense = create_expense(employee, assigned_engineer_id=engineer.user_id)

    user_service.delete_user(db_session, admin.user_id, engineer.user_id)

    db_session.expire_all()
    assert db_session.get(Profile, engineer.user_id) is None
    assert db_session.get(Profile, employee.user_id).reporting_engineer_id is None
    assert expense_service.get_expense(db_session, expense.id, admin.user_id).assigned_engineer_id is None
    assert db_session.query(UserRole).filter(UserRole.user_id == engineer.user_id).count() == 0


def test_admin_cannot_delete_self(db_session, workflow_users):
    admin = workflow_users["admin"]
    with pytest.raises(ValidationError):
        user_service.delete_user(db_session, admin.user_id, admin.user_id)


def test_user_history_reports_deductions(db_session, workflow_users, create_expense):
    admin = workflow_users["admin"]
    employee = workflow_users["employee"]
    expense = create_expense(employee, amount="1200", status="verified")
    expense_service.approve_expense(db_session, expense.id, admin.user_id, "ok")

    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_user] = _override_user(admin)
    client = TestClient(app)
    try:
        response = client.get(f"/users/{employee.user_id}/history")
        assert response.status_code == 200
        history = response.json()
        assert history["profile"]["balance"] == "3800.00"
        assert history["total_deducted"] == "1200.00"
        assert [item["expense_id"] for item in history["deductions"]] == [expense.id]
        assert [entry["action"] for entry in history["audit_logs"][expense.id]] == ["expense_approved"]
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_users_endpoints(db_session, workflow_users):
    app.dependency_overrides[get_db] = _override_get_db(db_session)
    app.dependency_overrides[get_current_user] = _override_user(workflow_users["admin"])
    client = TestClient(app)
    try:
        response = client.get("/users/engineers")
        assert [item["user_id"] for item in response.json()] == [workflow_users["engineer"].user_id]

        response = client.post("/users/", json={"name": "Field Hand", "email": "field@example.com"})
        assert response.status_code == 201
        created = response.json()
        assert created["role"] == "employee"

        response = client.patch(f"/users/{created['user_id']}", json={"name": "Field Lead"})
        assert response.json()["name"] == "Field Lead"

        response = client.delete(f"/users/{created['user_id']}")
        assert response.status_code == 204
        assert len(client.get("/users/").json()) == 4
    finally:
        client.close()
        app.dependency_overrides.clear()
