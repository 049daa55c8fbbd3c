"""
Deletion Request Model

A request to permanently remove an asset, reviewed by an admin. The asset
name and cost are snapshotted at submission so the record outlives the asset.
"""

import enum
from typing import Optional
from decimal import Decimal
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, Enum as SAEnum, Index, text
from sqlmodel import SQLModel, Field

from app.core.clock import utcnow
from app.core.config import JUSTIFICATION_MIN_LENGTH


class DeletionRequestStatus(str, enum.Enum):
    """Lifecycle states. Everything except PENDING is terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    DeletionRequestStatus.APPROVED,
    DeletionRequestStatus.REJECTED,
    DeletionRequestStatus.CANCELLED,
})

REVIEWED_STATUSES = frozenset({
    DeletionRequestStatus.APPROVED,
    DeletionRequestStatus.REJECTED,
})


class DeletionRequestBase(SQLModel):
    """Fields shared by the table and read schema."""
    asset_id: Optional[int] = Field(default=None, foreign_key="assets.id", index=True, ondelete="SET NULL")
    asset_name: str = Field(max_length=255)
    asset_cost: Decimal = Field(max_digits=12, decimal_places=2)
    requested_by: int = Field(foreign_key="users.id", index=True)
    requester_email: str = Field(max_length=255)
    justification: str
    reviewed_by: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    reviewer_email: Optional[str] = Field(default=None, max_length=255)
    review_comment: Optional[str] = Field(default=None)
    reviewed_at: Optional[datetime] = Field(default=None)


class DeletionRequest(DeletionRequestBase, table=True):
    """Deletion request table model."""
    __tablename__ = "deletion_requests"
    __table_args__ = (
        # At most one pending request per asset
        Index(
            "uq_deletion_requests_pending_asset",
            "asset_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        CheckConstraint(
            "(status IN ('approved', 'rejected') AND reviewed_by IS NOT NULL AND reviewed_at IS NOT NULL)"
            " OR (status IN ('pending', 'cancelled') AND reviewed_by IS NULL AND reviewed_at IS NULL)",
            name="ck_deletion_requests_review_fields",
        ),
        CheckConstraint(
            f"length(justification) >= {JUSTIFICATION_MIN_LENGTH}",
            name="ck_deletion_requests_justification_length",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    status: DeletionRequestStatus = Field(
        default=DeletionRequestStatus.PENDING,
        sa_column=Column(
            SAEnum(
                DeletionRequestStatus,
                name="deletion_request_status",
                values_callable=lambda e: [m.value for m in e],
                native_enum=False,
                create_constraint=True,
                length=20,
            ),
            nullable=False,
            index=True,
            default=DeletionRequestStatus.PENDING,
        ),
    )
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class DeletionRequestRead(DeletionRequestBase):
    """Schema for deletion request responses."""
    id: int
    status: DeletionRequestStatus
    created_at: datetime
    updated_at: datetime


class DeletionRequestStats(SQLModel):
    """Aggregates for the admin review dashboard."""
    pending_count: int = 0
    approved_last_30_days: int = 0
    rejected_last_30_days: int = 0
    average_review_time_hours: float = 0.0
    oldest_pending_days: float = 0.0
