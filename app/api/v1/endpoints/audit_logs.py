from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.core.config import settings
from app.core.exceptions import DeletionWorkflowError
from app.db.session import get_session
from app.middleware.error_middleware import raise_http_error
from app.models.audit_log import AuditAction, AuditEntityType, AuditLogResponse
from app.models.user import User
from app.schemas.deletion_request import AuditLogPage
from app.services.audit_service import AuditLogFilter, AuditService
from app.services.deletion_request_service import DeletionRequestService
from app.api.v1.endpoints.users import get_current_user, get_current_admin_user

router = APIRouter()


@router.get("", response_model=AuditLogPage)
async def list_audit_logs(
    performed_by: Optional[int] = None,
    action: Optional[AuditAction] = None,
    entity_type: Optional[AuditEntityType] = None,
    entity_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(default=settings.audit_log_page_size, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_session)
):
    """Filtered audit trail, newest first (admin only)."""
    filters = AuditLogFilter(
        performed_by=performed_by,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    logs, total = await DeletionRequestService(db).list_audit_logs(filters)
    return AuditLogPage(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/entity/{entity_id}", response_model=List[AuditLogResponse])
async def get_entity_audit_logs(
    entity_id: int,
    entity_type: AuditEntityType = AuditEntityType.ASSET,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session)
):
    """History of one asset or deletion request."""
    try:
        logs = await AuditService(db).get_entity_audit_logs(entity_type, entity_id, current_user)
    except DeletionWorkflowError as e:
        raise_http_error(e, "get_entity_audit_logs", current_user.id)
    return [AuditLogResponse.model_validate(log) for log in logs]
