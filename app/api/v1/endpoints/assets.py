from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from app.core.config import settings
from app.core.exceptions import DeletionWorkflowError
from app.core.rate_limit import limiter
from app.db.session import get_session
from app.middleware.error_middleware import raise_for_result, raise_http_error
from app.models.deletion_request import DeletionRequestRead
from app.models.user import User
from app.schemas.deletion_request import BulkDeleteResponse, BulkDeleteSchema
from app.services.approval_coordinator import ApprovalOutcome
from app.services.deletion_request_service import DeletionRequestService
from app.api.v1.endpoints.users import get_current_user, get_current_admin_user

router = APIRouter()


@router.get("/{asset_id}/deletion-request", response_model=Optional[DeletionRequestRead])
async def get_latest_deletion_request(
    asset_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session)
):
    """Most recent deletion request for an asset, or null if there is none."""
    service = DeletionRequestService(db)
    try:
        return await service.get_latest_request_for_asset(asset_id, current_user)
    except DeletionWorkflowError as e:
        raise_http_error(e, "get_latest_deletion_request", current_user.id)


@router.delete("/{asset_id}", response_model=ApprovalOutcome)
@limiter.limit(settings.write_rate_limit)
async def delete_asset(
    request: Request,
    asset_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    """
    Delete an asset directly (admin only).

    A pending deletion request for the asset is auto-approved in the same
    transaction.
    """
    service = DeletionRequestService(db)
    result = await service.delete_asset_directly(asset_id, current_user.id)
    return raise_for_result(result, "delete_asset_directly", current_user.id)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
@limiter.limit(settings.write_rate_limit)
async def bulk_delete_assets(
    request: Request,
    payload: BulkDeleteSchema,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    """Delete several assets; each one succeeds or fails on its own."""
    service = DeletionRequestService(db)
    results = await service.bulk_delete_assets(payload.asset_ids, current_user.id)
    deleted = sum(1 for r in results if r.success)
    return BulkDeleteResponse(
        deleted_count=deleted,
        failed_count=len(results) - deleted,
        results=results,
    )
