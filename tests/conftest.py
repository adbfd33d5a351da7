import sys
from collections.abc import Callable, Generator
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from voyage.config import Base  # noqa: E402
import voyage.config as app_config  # noqa: E402
# Import the full models module so all tables register with Base metadata.
from voyage.models import models as _all_models  # noqa: E402,F401
from voyage.models.models import Expense, Profile, UserRole  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so TestClient uses a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    yield
    engine.dispose()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_profile(db_session: Session) -> Callable[..., Profile]:
    counter = {"value": 0}

    def _create(
        role: str = "employee",
        name: Optional[str] = None,
        balance: str = "0",
        reporting_engineer_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Profile:
        counter["value"] += 1
        profile = Profile(
            name=name or f"{role.title()} {counter['value']}",
            email=email or f"{role}{counter['value']}@example.com",
            balance=Decimal(balance),
            reporting_engineer_id=reporting_engineer_id,
        )
        profile.roles.append(UserRole(role=role))
        db_session.add(profile)
        db_session.commit()
        return profile

    return _create


@pytest.fixture
def create_expense(db_session: Session) -> Callable[..., Expense]:
    def _create(
        owner: Profile,
        amount: str = "1500",
        status: str = "submitted",
        assigned_engineer_id: Optional[str] = None,
        title: str = "Site visit",
    ) -> Expense:
        expense = Expense(
            user_id=owner.user_id,
            title=title,
            destination="Pune",
            trip_start=date(2026, 3, 1),
            trip_end=date(2026, 3, 4),
            purpose="Commissioning",
            category="travel",
            total_amount=Decimal(amount),
            status=status,
            assigned_engineer_id=assigned_engineer_id,
        )
        db_session.add(expense)
        db_session.commit()
        return expense

    return _create


@pytest.fixture
def workflow_users(create_profile) -> dict:
    """Admin, cashier, engineer and an employee reporting to that engineer."""
    admin = create_profile("admin", name="Asha Admin")
    cashier = create_profile("cashier", name="Kiran Cashier", balance="2000")
    engineer = create_profile("engineer", name="Ravi Engineer")
    employee = create_profile(
        "employee",
        name="Meera Employee",
        balance="5000",
        reporting_engineer_id=engineer.user_id,
    )
    return {"admin": admin, "cashier": cashier, "engineer": engineer, "employee": employee}
