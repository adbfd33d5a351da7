from voyage.models.models import UserRole
from voyage.services.permissions import (
    can_engineer_review,
    can_user_edit,
    get_primary_role,
    get_users_with_role,
    has_role,
)


def test_has_role_is_false_for_blank_ids(db_session, create_profile):
    create_profile("admin")
    assert has_role(db_session, None, "admin") is False
    assert has_role(db_session, "", "admin") is False
    assert has_role(db_session, "   ", "admin") is False


def test_has_role_checks_assignment(db_session, create_profile):
    engineer = create_profile("engineer")
    assert has_role(db_session, engineer.user_id, "engineer") is True
    assert has_role(db_session, engineer.user_id, "admin") is False


def test_primary_role_prefers_highest_priority(db_session, create_profile):
    user = create_profile("employee")
    db_session.add_all(
        [
            UserRole(user_id=user.user_id, role="engineer"),
            UserRole(user_id=user.user_id, role="cashier"),
        ]
    )
    db_session.commit()
    assert get_primary_role(db_session, user.user_id) == "cashier"

    db_session.add(UserRole(user_id=user.user_id, role="admin"))
    db_session.commit()
    assert get_primary_role(db_session, user.user_id) == "admin"


def test_primary_role_is_none_without_assignment(db_session):
    assert get_primary_role(db_session, "missing-user") is None


def test_users_with_role_lists_holders(db_session, create_profile):
    first = create_profile("cashier")
    second = create_profile("cashier")
    create_profile("employee")
    assert set(get_users_with_role(db_session, "cashier")) == {first.user_id, second.user_id}


def test_owner_can_edit_only_while_submitted(db_session, workflow_users, create_expense):
    employee = workflow_users["employee"]
    expense = create_expense(employee)
    assert can_user_edit(db_session, expense, employee.user_id) is True

    expense.status = "verified"
    db_session.commit()
    assert can_user_edit(db_session, expense, employee.user_id) is False


def test_admin_can_edit_any_status(db_session, workflow_users, create_expense):
    expense = create_expense(workflow_users["employee"], status="verified")
    assert can_user_edit(db_session, expense, workflow_users["admin"].user_id) is True
    assert can_user_edit(db_session, expense, workflow_users["engineer"].user_id) is False


def test_engineer_review_requires_assignment(workflow_users, create_expense):
    engineer = workflow_users["engineer"]
    expense = create_expense(workflow_users["employee"], assigned_engineer_id=engineer.user_id)
    assert can_engineer_review(expense, engineer.user_id) is True
    assert can_engineer_review(expense, workflow_users["admin"].user_id) is False
    assert can_engineer_review(expense, None) is False
