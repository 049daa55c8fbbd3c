from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Optional

from app.models.audit_log import AuditLogResponse
from app.models.deletion_request import DeletionRequestRead
from app.services.approval_coordinator import ApprovalOutcome


class SubmitDeletionRequestSchema(BaseModel):
    """Schema for deletion request submissions."""
    asset_id: int
    justification: str = Field(..., description="Why the asset should be deleted (at least 10 characters)")


class ReviewDeletionRequestSchema(BaseModel):
    """Schema for approve/reject requests. The comment is optional for both."""
    comment: Optional[str] = None
    reviewer_email: Optional[EmailStr] = None


class DeletionRequestPage(BaseModel):
    """Paginated admin listing."""
    items: List[DeletionRequestRead]
    total: int
    page: int
    page_size: int
    total_pages: int


class BulkDeleteSchema(BaseModel):
    """Schema for bulk direct deletion."""
    asset_ids: List[int] = Field(..., min_length=1, max_length=100)


class BulkDeleteItemResult(BaseModel):
    """Per-asset outcome of a bulk deletion."""
    asset_id: int
    success: bool
    outcome: Optional[ApprovalOutcome] = None
    error: Optional[Dict[str, Any]] = None


class BulkDeleteResponse(BaseModel):
    deleted_count: int
    failed_count: int
    results: List[BulkDeleteItemResult]


class PendingCountResponse(BaseModel):
    pending_count: int


class AuditLogPage(BaseModel):
    """Filtered audit log page with total match count."""
    items: List[AuditLogResponse]
    total: int
    limit: int
    offset: int
