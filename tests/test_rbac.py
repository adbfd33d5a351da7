from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from voyage.api.dependencies import get_db
from voyage.auth.jwt import create_access_token, decode_token, get_current_user, require_roles
from voyage.main import app as voyage_app


class DummyUser:
    def __init__(self, *roles: str):
        self._roles = set(roles)

    def has_any_role(self, *role_names: str) -> bool:
        return any(role in self._roles for role in role_names)


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/approvals")
    def approvals_route(_: object = Depends(require_roles("admin"))):
        return {"ok": True}

    @app.get("/funding")
    def funding_route(_: object = Depends(require_roles("cashier", "admin"))):
        return {"ok": True}

    return app


def test_approval_route_requires_admin_role():
    app = _build_app()
    client = TestClient(app)

    app.dependency_overrides[get_current_user] = lambda: DummyUser("engineer")
    response = client.get("/approvals")
    assert response.status_code == 403

    app.dependency_overrides[get_current_user] = lambda: DummyUser("admin")
    response = client.get("/approvals")
    assert response.status_code == 200


def test_funding_route_allows_cashier_or_admin():
    app = _build_app()
    client = TestClient(app)

    app.dependency_overrides[get_current_user] = lambda: DummyUser("employee")
    assert client.get("/funding").status_code == 403

    app.dependency_overrides[get_current_user] = lambda: DummyUser("cashier")
    assert client.get("/funding").status_code == 200

    app.dependency_overrides[get_current_user] = lambda: DummyUser("admin")
    assert client.get("/funding").status_code == 200


def test_access_token_round_trip():
    token = create_access_token({"sub": "user-123"})
    payload = decode_token(token)
    assert payload["sub"] == "user-123"
    assert payload["type"] == "access"


def test_bearer_token_identifies_profile(db_session, create_profile):
    employee = create_profile("employee", balance="42")

    def _override_get_db():
        yield db_session

    voyage_app.dependency_overrides[get_db] = _override_get_db
    client = TestClient(voyage_app)
    try:
        response = client.get(
            "/balances/me",
            headers={"Authorization": f"Bearer {create_access_token({'sub': employee.user_id})}"},
        )
        assert response.status_code == 200
        assert response.json()["user_id"] == employee.user_id
        assert response.json()["role"] == "employee"

        response = client.get("/balances/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401
    finally:
        client.close()
        voyage_app.dependency_overrides.clear()
