from typing import Optional
from decimal import Decimal
from datetime import date, datetime
from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field

from app.core.clock import utcnow


class Category(SQLModel, table=True):
    """Asset category."""
    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, max_length=100)
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[int] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")


class Department(SQLModel, table=True):
    """Department owning assets."""
    __tablename__ = "departments"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, max_length=100)
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[int] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")


class AssetBase(SQLModel):
    """Fields shared by asset table and input schemas."""
    name: str = Field(max_length=255)
    category_id: int = Field(foreign_key="categories.id", index=True, ondelete="RESTRICT")
    department_id: int = Field(foreign_key="departments.id", index=True, ondelete="RESTRICT")
    date_purchased: date = Field(index=True)
    cost: Decimal = Field(max_digits=12, decimal_places=2, gt=0)


class Asset(AssetBase, table=True):
    """
    A tracked item of value.

    Only removed through the approval coordinator (request approval or
    direct admin deletion).
    """
    __tablename__ = "assets"
    __table_args__ = (CheckConstraint("cost > 0", name="ck_assets_cost_positive"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    created_by: int = Field(foreign_key="users.id", index=True)
    updated_by: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

