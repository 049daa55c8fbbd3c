from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel
from sqlmodel.pool import StaticPool

from app.main import app
from app.core.clock import FixedClock
from app.core.rate_limit import limiter
from app.db import base  # noqa: F401
from app.db.session import create_db_engine, get_session
from app.models.asset import Asset, Category, Department
from app.models.user import User, UserRole
from app.services.cache_service import cache
from app.services.error_handler import error_handler

T0 = datetime(2026, 3, 2, 9, 0, 0)


def make_user(session: Session, email: str, role: UserRole = UserRole.USER) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_asset(
    session: Session,
    owner: User,
    category: Category,
    department: Department,
    name: str = "Laptop A1",
    cost: Decimal = Decimal("100.00")
) -> Asset:
    asset = Asset(
        name=name,
        category_id=category.id,
        department_id=department.id,
        date_purchased=date(2024, 1, 15),
        cost=cost,
        created_by=owner.id,
    )
    session.add(asset)
    session.commit()
    session.refresh(asset)
    return asset


def seed_reference_data(session: Session, admin: User):
    category = Category(name="IT Equipment", created_by=admin.id)
    department = Department(name="Engineering", created_by=admin.id)
    session.add(category)
    session.add(department)
    session.commit()
    session.refresh(category)
    session.refresh(department)
    return category, department


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear the read cache and error history between tests."""
    cache.clear()
    error_handler.clear_error_history()
    yield
    cache.clear()


@pytest.fixture(name="session")
def session_fixture():
    """Create a test database session."""
    engine = create_db_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture(name="clock")
def clock_fixture():
    return FixedClock(T0)


@pytest.fixture(name="admin")
def admin_fixture(session: Session):
    return make_user(session, "admin@example.com", UserRole.ADMIN)


@pytest.fixture(name="second_admin")
def second_admin_fixture(session: Session):
    return make_user(session, "reviewer@example.com", UserRole.ADMIN)


@pytest.fixture(name="owner")
def owner_fixture(session: Session):
    return make_user(session, "owner@example.com")


@pytest.fixture(name="other_user")
def other_user_fixture(session: Session):
    return make_user(session, "someone@example.com")


@pytest.fixture(name="reference_data")
def reference_data_fixture(session: Session, admin: User):
    return seed_reference_data(session, admin)


@pytest.fixture(name="asset")
def asset_fixture(session: Session, owner: User, reference_data):
    category, department = reference_data
    return make_asset(session, owner, category, department)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with database session dependency override."""
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    limiter.enabled = False
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite so several sessions can contend for the write lock."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'workflow.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()
