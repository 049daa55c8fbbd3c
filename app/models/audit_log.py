"""
Audit Log Model

Append-only record of state-changing actions on assets and deletion requests.
"""

from typing import Optional, Dict, Any
from sqlalchemy import Enum as SAEnum
from sqlmodel import SQLModel, Field, JSON, Column
from datetime import datetime
from enum import Enum


class AuditAction(str, Enum):
    """Enum for different types of audit actions."""
    ASSET_DELETED = "asset_deleted"
    DELETION_REQUEST_SUBMITTED = "deletion_request_submitted"
    DELETION_REQUEST_CANCELLED = "deletion_request_cancelled"
    DELETION_REQUEST_APPROVED = "deletion_request_approved"
    DELETION_REQUEST_REJECTED = "deletion_request_rejected"


class AuditEntityType(str, Enum):
    """Kinds of entity an audit entry can describe."""
    ASSET = "asset"
    DELETION_REQUEST = "deletion_request"


def _enum_column(enum_cls, name: str) -> Column:
    return Column(
        SAEnum(
            enum_cls,
            name=name,
            values_callable=lambda e: [m.value for m in e],
            native_enum=False,
            create_constraint=True,
            length=50,
        ),
        nullable=False,
        index=True,
    )


class AuditLogCreate(SQLModel):
    """A fully formed entry handed to the audit writer."""
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: int = Field(description="ID of the affected entity; kept after the entity is gone")
    performed_by: int = Field(description="User who performed the action")
    entity_data: Dict[str, Any] = Field(default_factory=dict, description="Snapshot of relevant data at action time")


class AuditLog(SQLModel, table=True):
    """Audit log table model. Rows are never updated or deleted."""
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    action: AuditAction = Field(sa_column=_enum_column(AuditAction, "audit_action"))
    entity_type: AuditEntityType = Field(sa_column=_enum_column(AuditEntityType, "audit_entity_type"))
    entity_id: int = Field(index=True)
    entity_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    performed_by: int = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(index=True, description="Server-assigned, monotonic within a transaction")


class AuditLogResponse(SQLModel):
    """Schema for audit log responses."""
    id: int
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: int
    entity_data: Dict[str, Any]
    performed_by: int
    created_at: datetime
