from pydantic import BaseModel, EmailStr
from datetime import datetime
from typing import Optional

from app.models.user import UserRole


class UserResponseSchema(BaseModel):
    """Schema for user response data."""
    id: int
    email: EmailStr
    full_name: Optional[str] = None
    role: UserRole
    is_admin: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
