#!/usr/bin/env python
"""
Seed script to populate the database with sample data for local development.

Creates one admin, one cashier, one engineer and a number of employees who
report to that engineer, then prints a bearer token for each account.

Usage:
    python scripts/seed_data.py --employees 3
"""

import argparse
from decimal import Decimal
from typing import List, Optional

from voyage.auth.jwt import create_access_token
from voyage.config import Base, SessionLocal, engine
from voyage.constants import ROLE_ADMIN, ROLE_CASHIER, ROLE_EMPLOYEE, ROLE_ENGINEER
from voyage.models.models import Profile, UserRole
from voyage.services.system_settings import ensure_default_settings


def get_or_create_profile(
    session,
    email: str,
    name: str,
    role: str,
    balance: Decimal = Decimal("0"),
    reporting_engineer_id: Optional[str] = None,
) -> Profile:
    profile = session.query(Profile).filter(Profile.email == email).first()
    if profile:
        return profile

    profile = Profile(
        name=name,
        email=email,
        balance=balance,
        reporting_engineer_id=reporting_engineer_id,
    )
    profile.roles.append(UserRole(role=role))
    session.add(profile)
    session.flush()
    return profile


def seed_database(employees: int) -> List[Profile]:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_default_settings(session)

        admin = get_or_create_profile(session, "admin@example.com", "Site Administrator", ROLE_ADMIN)
        cashier = get_or_create_profile(
            session, "cashier@example.com", "Cash Desk", ROLE_CASHIER, balance=Decimal("100000.00")
        )
        engineer = get_or_create_profile(session, "engineer@example.com", "Lead Engineer", ROLE_ENGINEER)
        created = [admin, cashier, engineer]

        for index in range(1, max(employees, 0) + 1):
            created.append(
                get_or_create_profile(
                    session,
                    f"employee{index}@example.com",
                    f"Test Employee {index}",
                    ROLE_EMPLOYEE,
                    reporting_engineer_id=engineer.user_id,
                )
            )

        session.commit()
        for profile in created:
            token = create_access_token({"sub": profile.user_id})
            print(f"{profile.role:<9} {profile.email:<28} {token}")
        print(f"Seed complete. {len(created)} accounts available.")
        return created


def main():
    parser = argparse.ArgumentParser(description="Seed the expense database with sample data.")
    parser.add_argument("--employees", type=int, default=3, help="Number of employee accounts to create")
    args = parser.parse_args()
    seed_database(args.employees)


if __name__ == "__main__":
    main()
