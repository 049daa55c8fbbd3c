#!/usr/bin/env python3
"""
Sample Data Seed Script

Creates an admin, a regular user, a category, a department and a few assets
owned by the regular user, so the deletion workflow can be tried end to end.
Users are created explicitly with their role.
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add the parent directory to the path so we can import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session, SQLModel, select

from app.core.config import settings
from app.db import base  # noqa: F401
from app.db.session import create_db_engine
from app.models.asset import Asset, Category, Department
from app.models.user import User, UserRole

USERS = [
    {"email": "admin@example.com", "full_name": "Inventory Admin", "role": UserRole.ADMIN},
    {"email": "user@example.com", "full_name": "Regular User", "role": UserRole.USER},
]

ASSETS = [
    {"name": "Dell Latitude 7440", "cost": Decimal("1450.00"), "date_purchased": date(2023, 3, 14)},
    {"name": "Standing Desk", "cost": Decimal("620.50"), "date_purchased": date(2022, 9, 1)},
    {"name": "Projector Epson EB-W51", "cost": Decimal("100.00"), "date_purchased": date(2021, 11, 23)},
]


def get_or_create_user(db: Session, email: str, full_name: str, role: UserRole) -> User:
    user = db.exec(select(User).where(User.email == email)).first()
    if user:
        print(f"User '{email}' already exists, skipping...")
        return user

    user = User(email=email, full_name=full_name, role=role)
    db.add(user)
    db.flush()
    print(f"Created {role.value}: {email} (id={user.id})")
    return user


def get_or_create_named(db: Session, model, name: str, created_by: int):
    row = db.exec(select(model).where(model.name == name)).first()
    if row:
        return row

    row = model(name=name, created_by=created_by)
    db.add(row)
    db.flush()
    return row


def seed(db: Session) -> int:
    """Seed sample data and return the number of assets created."""
    users = {data["role"]: get_or_create_user(db, **data) for data in USERS}
    admin, owner = users[UserRole.ADMIN], users[UserRole.USER]

    category = get_or_create_named(db, Category, "IT Equipment", admin.id)
    department = get_or_create_named(db, Department, "Engineering", admin.id)

    created_count = 0
    for asset_data in ASSETS:
        existing = db.exec(select(Asset).where(Asset.name == asset_data["name"])).first()
        if existing:
            print(f"Asset '{asset_data['name']}' already exists, skipping...")
            continue

        db.add(Asset(
            category_id=category.id,
            department_id=department.id,
            created_by=owner.id,
            **asset_data
        ))
        created_count += 1
        print(f"Created asset: {asset_data['name']}")

    db.commit()
    return created_count


def main():
    """Main function to run the seeding script."""
    engine = create_db_engine(settings.database_url)
    SQLModel.metadata.create_all(engine)

    with Session(engine) as db:
        created_count = seed(db)
        print(f"Seeding complete! Created {created_count} new assets")


if __name__ == "__main__":
    main()
