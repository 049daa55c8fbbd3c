"""
Audit Logging Service

Append-only writer used inside state-changing transactions, plus the
read-side queries behind the audit log screens.
"""

from typing import List, Optional, Tuple
from sqlmodel import Session, select, desc, func
from sqlalchemy.exc import SQLAlchemyError
from datetime import date, datetime, timedelta
import logging

from pydantic import BaseModel

from app.core.clock import Clock, SystemClock
from app.core.exceptions import AuthorizationError, NotFoundError, TransactionError
from app.models.asset import Asset
from app.models.audit_log import AuditLog, AuditAction, AuditEntityType, AuditLogCreate
from app.models.deletion_request import DeletionRequest
from app.models.user import User

logger = logging.getLogger(__name__)

_LAST_TIMESTAMP_KEY = "audit_log_last_created_at"


class AuditLogFilter(BaseModel):
    """Filters for listing audit logs. ``end_date`` covers the whole day."""
    performed_by: Optional[int] = None
    action: Optional[AuditAction] = None
    entity_type: Optional[AuditEntityType] = None
    entity_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: int = 50
    offset: int = 0


class AuditLogWriter:
    """
    Appends entries inside the caller's open transaction.

    The writer flushes but never commits, so an entry lands or disappears
    together with the state change it documents.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    def append(self, entry: AuditLogCreate) -> int:
        """Persist ``entry`` and return its new id."""
        audit_log = AuditLog(
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            entity_data=entry.entity_data,
            performed_by=entry.performed_by,
            created_at=self._next_timestamp(),
        )
        try:
            self.db.add(audit_log)
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to append audit entry {entry.action.value} for {entry.entity_type.value} {entry.entity_id}: {e}")
            raise TransactionError("audit_log_append", str(e)) from e

        logger.debug(f"Audit entry {audit_log.id}: {entry.action.value} {entry.entity_type.value} {entry.entity_id}")
        return audit_log.id

    def _next_timestamp(self) -> datetime:
        # Entries written by one session never share or go back in time
        now = self.clock.now()
        last = self.db.info.get(_LAST_TIMESTAMP_KEY)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self.db.info[_LAST_TIMESTAMP_KEY] = now
        return now


class AuditService:
    """Read-side queries over the audit trail."""

    def __init__(self, db: Session):
        self.db = db

    async def get_audit_logs(self, filters: AuditLogFilter) -> Tuple[List[AuditLog], int]:
        """
        Retrieve audit logs with filtering options.

        Args:
            filters: performer, action, entity, date range and paging

        Returns:
            The requested page, newest first, and the total match count
        """
        conditions = []
        if filters.performed_by is not None:
            conditions.append(AuditLog.performed_by == filters.performed_by)
        if filters.action:
            conditions.append(AuditLog.action == filters.action)
        if filters.entity_type:
            conditions.append(AuditLog.entity_type == filters.entity_type)
        if filters.entity_id is not None:
            conditions.append(AuditLog.entity_id == filters.entity_id)
        if filters.start_date:
            conditions.append(AuditLog.created_at >= datetime.combine(filters.start_date, datetime.min.time()))
        if filters.end_date:
            end_exclusive = datetime.combine(filters.end_date + timedelta(days=1), datetime.min.time())
            conditions.append(AuditLog.created_at < end_exclusive)

        query = (
            select(AuditLog)
            .where(*conditions)
            .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
            .offset(filters.offset)
            .limit(filters.limit)
        )
        count_query = select(func.count(AuditLog.id)).where(*conditions)

        logs = list(self.db.exec(query).all())
        total = self.db.exec(count_query).one()
        return logs, total

    async def get_entity_audit_logs(
        self,
        entity_type: AuditEntityType,
        entity_id: int,
        actor: User
    ) -> List[AuditLog]:
        """
        History of one entity.

        Admins see everything. Regular users only see assets they own (live or
        per the deletion snapshot) and deletion requests they submitted.
        """
        logs = list(self.db.exec(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
        ).all())

        if actor.is_admin:
            return logs

        if entity_type == AuditEntityType.ASSET:
            asset = self.db.get(Asset, entity_id)
            if asset is not None:
                allowed = asset.created_by == actor.id
            else:
                allowed = any(log.entity_data.get("created_by") == actor.id for log in logs)
        else:
            request = self.db.get(DeletionRequest, entity_id)
            if request is None:
                raise NotFoundError("DeletionRequest", entity_id)
            allowed = request.requested_by == actor.id

        if not allowed:
            raise AuthorizationError(
                "You can only view the history of your own assets and requests",
                actor_id=actor.id,
                action="view_audit_history",
            )
        return logs
