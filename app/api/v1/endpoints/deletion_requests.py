from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session

from app.core.config import settings
from app.core.rate_limit import limiter
from app.db.session import get_session
from app.middleware.error_middleware import raise_for_result
from app.models.deletion_request import DeletionRequestRead, DeletionRequestStats, DeletionRequestStatus
from app.models.user import User
from app.schemas.deletion_request import (
    DeletionRequestPage,
    PendingCountResponse,
    ReviewDeletionRequestSchema,
    SubmitDeletionRequestSchema,
)
from app.services.approval_coordinator import ApprovalOutcome
from app.services.deletion_request_service import DeletionRequestService
from app.api.v1.endpoints.users import get_current_user, get_current_admin_user

router = APIRouter()


@router.post("", response_model=DeletionRequestRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.write_rate_limit)
async def submit_deletion_request(
    request: Request,
    payload: SubmitDeletionRequestSchema,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session)
):
    """Ask an admin to delete one of your assets."""
    service = DeletionRequestService(db)
    result = await service.submit_deletion_request(payload.asset_id, current_user.id, payload.justification)
    return raise_for_result(result, "submit_deletion_request", current_user.id)


@router.post("/{request_id}/cancel", response_model=DeletionRequestRead)
@limiter.limit(settings.write_rate_limit)
async def cancel_deletion_request(
    request: Request,
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session)
):
    """Withdraw your own pending request."""
    service = DeletionRequestService(db)
    result = await service.cancel_deletion_request(request_id, current_user.id)
    return raise_for_result(result, "cancel_deletion_request", current_user.id)


@router.post("/{request_id}/approve", response_model=ApprovalOutcome)
@limiter.limit(settings.write_rate_limit)
async def approve_deletion_request(
    request: Request,
    request_id: int,
    payload: Optional[ReviewDeletionRequestSchema] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    """
    Approve a pending request.

    The asset is permanently deleted and both audit entries are written in
    the same transaction. Answers 409 if the request was already resolved.
    """
    payload = payload or ReviewDeletionRequestSchema()
    service = DeletionRequestService(db)
    result = await service.approve_deletion_request(
        request_id,
        current_user.id,
        reviewer_email=payload.reviewer_email,
        comment=payload.comment,
    )
    return raise_for_result(result, "approve_deletion_request", current_user.id)


@router.post("/{request_id}/reject", response_model=DeletionRequestRead)
@limiter.limit(settings.write_rate_limit)
async def reject_deletion_request(
    request: Request,
    request_id: int,
    payload: Optional[ReviewDeletionRequestSchema] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    """Reject a pending request. The comment is optional."""
    payload = payload or ReviewDeletionRequestSchema()
    service = DeletionRequestService(db)
    result = await service.reject_deletion_request(
        request_id,
        current_user.id,
        reviewer_email=payload.reviewer_email,
        comment=payload.comment,
    )
    return raise_for_result(result, "reject_deletion_request", current_user.id)


@router.get("", response_model=DeletionRequestPage)
async def list_deletion_requests(
    status_filter: Optional[DeletionRequestStatus] = Query(default=None, alias="status"),
    requester_id: Optional[int] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=100),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    """Admin listing, newest first."""
    service = DeletionRequestService(db)
    return await service.list_deletion_requests(
        status=status_filter,
        requester_id=requester_id,
        page=page,
        page_size=page_size,
    )


@router.get("/mine", response_model=List[DeletionRequestRead])
async def get_my_deletion_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session)
):
    """Requests submitted by the current user, newest first."""
    service = DeletionRequestService(db)
    return await service.get_my_requests(current_user.id)


@router.get("/stats", response_model=DeletionRequestStats)
async def get_deletion_request_stats(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    service = DeletionRequestService(db)
    return await service.get_stats()


@router.get("/pending-count", response_model=PendingCountResponse)
async def get_pending_count(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    service = DeletionRequestService(db)
    return PendingCountResponse(pending_count=await service.get_pending_count())
