from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlmodel import Session

from app.db.session import get_session
from app.models.user import User
from app.schemas.user import UserResponseSchema

router = APIRouter()


async def get_current_user(
    x_user_id: Optional[int] = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_session)
) -> User:
    """
    Resolve the acting user.

    Authentication happens upstream; the session layer forwards the
    authenticated user's id in the ``X-User-Id`` header.
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    user = db.get(User, x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """Get current authenticated admin user."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


@router.get("/me", response_model=UserResponseSchema)
async def read_users_me(
    current_user: User = Depends(get_current_user)
):
    """Get current user profile."""
    return UserResponseSchema.model_validate(current_user)
