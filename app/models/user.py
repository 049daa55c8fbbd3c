import enum
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from app.core.clock import utcnow


class UserRole(str, enum.Enum):
    """Roles an actor can hold."""
    ADMIN = "admin"
    USER = "user"


class UserBase(SQLModel):
    """Base user model with shared fields."""
    email: str = Field(unique=True, index=True, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)
    role: UserRole = Field(default=UserRole.USER, description="Admins review deletion requests")
    is_active: bool = Field(default=True)


class User(UserBase, table=True):
    """User table model. Created explicitly with its role; no default-role trigger."""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = Field(default=None)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

