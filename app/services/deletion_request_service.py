"""
Deletion Request Service

Boundary for the asset deletion workflow. Write operations validate input,
resolve actors, hand off to the approval coordinator and return a
ServiceResult; expected failures travel as typed errors inside the result.
Only infrastructure failures (a lost connection) escape as exceptions.
"""

import logging
import math
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlmodel import Session, select, desc, func

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    DeletionWorkflowError,
    NotFoundError,
    ValidationError,
)
from app.models.asset import Asset
from app.models.audit_log import AuditLog
from app.models.deletion_request import (
    DeletionRequest,
    DeletionRequestRead,
    DeletionRequestStats,
    DeletionRequestStatus,
    REVIEWED_STATUSES,
)
from app.models.user import User
from app.schemas.deletion_request import BulkDeleteItemResult, DeletionRequestPage
from app.services.approval_coordinator import ApprovalOutcome, ApprovalTransactionCoordinator
from app.services.audit_service import AuditLogFilter, AuditService
from app.services.cache_service import (
    DELETION_REQUEST_PREFIX,
    cache,
    invalidate_deletion_request_reads,
)
from app.services.policy_guard import policy_guard
from app.services.result import ServiceResult

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = f"{DELETION_REQUEST_PREFIX}stats"
PENDING_COUNT_CACHE_KEY = f"{DELETION_REQUEST_PREFIX}pending_count"
STATS_WINDOW_DAYS = 30


class DeletionRequestService:
    """Service for submitting, reviewing and querying deletion requests."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.policy = policy_guard
        self.coordinator = ApprovalTransactionCoordinator(db, clock=self.clock, policy=self.policy)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def submit_deletion_request(
        self,
        asset_id: int,
        requester_id: int,
        justification: Optional[str]
    ) -> ServiceResult[DeletionRequestRead]:
        """Open a pending request for an asset the requester owns."""
        try:
            cleaned = self._validate_justification(justification)
            requester = self._get_actor(requester_id)
            request = self.coordinator.submit(asset_id, requester, cleaned)
        except DeletionWorkflowError as e:
            return ServiceResult.failure(e)

        invalidate_deletion_request_reads()
        return ServiceResult.success(request)

    async def cancel_deletion_request(self, request_id: int, actor_id: int) -> ServiceResult[DeletionRequestRead]:
        try:
            actor = self._get_actor(actor_id)
            request = self.coordinator.cancel(request_id, actor)
        except DeletionWorkflowError as e:
            return ServiceResult.failure(e)

        invalidate_deletion_request_reads()
        return ServiceResult.success(request)

    async def approve_deletion_request(
        self,
        request_id: int,
        reviewer_id: int,
        reviewer_email: Optional[str] = None,
        comment: Optional[str] = None
    ) -> ServiceResult[ApprovalOutcome]:
        """Approve a pending request; the asset is deleted in the same transaction."""
        try:
            reviewer = self._get_actor(reviewer_id)
            outcome = self.coordinator.approve(request_id, reviewer, reviewer_email, comment)
        except DeletionWorkflowError as e:
            return ServiceResult.failure(e)

        invalidate_deletion_request_reads()
        return ServiceResult.success(outcome)

    async def reject_deletion_request(
        self,
        request_id: int,
        reviewer_id: int,
        reviewer_email: Optional[str] = None,
        comment: Optional[str] = None
    ) -> ServiceResult[DeletionRequestRead]:
        try:
            reviewer = self._get_actor(reviewer_id)
            request = self.coordinator.reject(request_id, reviewer, reviewer_email, comment)
        except DeletionWorkflowError as e:
            return ServiceResult.failure(e)

        invalidate_deletion_request_reads()
        return ServiceResult.success(request)

    async def delete_asset_directly(self, asset_id: int, admin_id: int) -> ServiceResult[ApprovalOutcome]:
        """Admin override; a pending request for the asset is auto-approved."""
        try:
            admin = self._get_actor(admin_id)
            outcome = self.coordinator.delete_asset_directly(asset_id, admin)
        except DeletionWorkflowError as e:
            return ServiceResult.failure(e)

        invalidate_deletion_request_reads()
        return ServiceResult.success(outcome)

    async def bulk_delete_assets(self, asset_ids: List[int], admin_id: int) -> List[BulkDeleteItemResult]:
        """
        Delete several assets, each in its own transaction.

        One failing asset does not undo the others; every asset gets its own
        outcome in the returned list, in input order.
        """
        results = []
        for asset_id in dict.fromkeys(asset_ids):
            result = await self.delete_asset_directly(asset_id, admin_id)
            if result.ok:
                results.append(BulkDeleteItemResult(asset_id=asset_id, success=True, outcome=result.value))
            else:
                results.append(BulkDeleteItemResult(asset_id=asset_id, success=False, error=result.error.to_dict()))

        failed = sum(1 for r in results if not r.success)
        logger.info(f"Bulk deletion by admin {admin_id}: {len(results) - failed} deleted, {failed} failed")
        return results

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def list_deletion_requests(
        self,
        status: Optional[DeletionRequestStatus] = None,
        requester_id: Optional[int] = None,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> DeletionRequestPage:
        """Newest first, with total count for pagination."""
        page = max(page, 1)
        page_size = page_size or settings.default_page_size

        conditions = []
        if status is not None:
            conditions.append(DeletionRequest.status == status)
        if requester_id is not None:
            conditions.append(DeletionRequest.requested_by == requester_id)

        total = self.db.exec(select(func.count(DeletionRequest.id)).where(*conditions)).one()
        requests = self.db.exec(
            select(DeletionRequest)
            .where(*conditions)
            .order_by(desc(DeletionRequest.created_at), desc(DeletionRequest.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()

        return DeletionRequestPage(
            items=[DeletionRequestRead.model_validate(r) for r in requests],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )

    async def get_my_requests(self, requester_id: int) -> List[DeletionRequestRead]:
        requests = self.db.exec(
            select(DeletionRequest)
            .where(DeletionRequest.requested_by == requester_id)
            .order_by(desc(DeletionRequest.created_at), desc(DeletionRequest.id))
        ).all()
        return [DeletionRequestRead.model_validate(r) for r in requests]

    async def get_latest_request_for_asset(self, asset_id: int, actor: User) -> Optional[DeletionRequestRead]:
        """Most recent request for a live asset; visible to its owner and admins."""
        asset = self.db.get(Asset, asset_id)
        if asset is None:
            raise NotFoundError("Asset", asset_id)
        if not self.policy.owns_asset(actor, asset):
            raise AuthorizationError(
                "You can only view deletion requests for your own assets",
                actor_id=actor.id,
                action="view_deletion_request",
            )

        request = self.db.exec(
            select(DeletionRequest)
            .where(DeletionRequest.asset_id == asset_id)
            .order_by(desc(DeletionRequest.created_at), desc(DeletionRequest.id))
        ).first()
        return DeletionRequestRead.model_validate(request) if request else None

    async def get_pending_count(self) -> int:
        """Pending requests for the navigation badge (read-cached)."""
        cached = cache.get(PENDING_COUNT_CACHE_KEY)
        if cached is not None:
            return cached

        generation = cache.generation
        count = self.db.exec(
            select(func.count(DeletionRequest.id))
            .where(DeletionRequest.status == DeletionRequestStatus.PENDING)
        ).one()
        cache.set(PENDING_COUNT_CACHE_KEY, count, generation=generation)
        return count

    async def get_stats(self) -> DeletionRequestStats:
        """Dashboard aggregates over the last 30 days (read-cached)."""
        cached = cache.get(STATS_CACHE_KEY, window_days=STATS_WINDOW_DAYS)
        if cached is not None:
            return cached

        generation = cache.generation
        now = self.clock.now()
        window_start = now - timedelta(days=STATS_WINDOW_DAYS)

        pending_count = self.db.exec(
            select(func.count(DeletionRequest.id))
            .where(DeletionRequest.status == DeletionRequestStatus.PENDING)
        ).one()
        approved, rejected = self._reviewed_counts_since(window_start)

        reviewed = self.db.exec(
            select(DeletionRequest.created_at, DeletionRequest.reviewed_at)
            .where(
                DeletionRequest.status.in_(list(REVIEWED_STATUSES)),
                DeletionRequest.reviewed_at.is_not(None)
            )
        ).all()
        review_hours = [
            (reviewed_at - created_at).total_seconds() / 3600
            for created_at, reviewed_at in reviewed
        ]
        average_review_time = sum(review_hours) / len(review_hours) if review_hours else 0.0

        oldest_pending = self.db.exec(
            select(func.min(DeletionRequest.created_at))
            .where(DeletionRequest.status == DeletionRequestStatus.PENDING)
        ).one()
        oldest_pending_days = (now - oldest_pending).total_seconds() / 86400 if oldest_pending else 0.0

        stats = DeletionRequestStats(
            pending_count=pending_count,
            approved_last_30_days=approved,
            rejected_last_30_days=rejected,
            average_review_time_hours=round(average_review_time, 2),
            oldest_pending_days=round(oldest_pending_days, 2),
        )
        cache.set(STATS_CACHE_KEY, stats, generation=generation, window_days=STATS_WINDOW_DAYS)
        return stats

    async def list_audit_logs(self, filters: AuditLogFilter) -> Tuple[List[AuditLog], int]:
        return await AuditService(self.db).get_audit_logs(filters)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_justification(self, justification: Optional[str]) -> str:
        cleaned = (justification or "").strip()
        if len(cleaned) < settings.justification_min_length:
            raise ValidationError(
                f"Justification must be at least {settings.justification_min_length} characters",
                field="justification",
            )
        return cleaned

    def _get_actor(self, actor_id: Optional[int]) -> User:
        if actor_id is None:
            raise ValidationError("An acting user is required", field="actor_id")
        actor = self.db.get(User, actor_id)
        if actor is None:
            raise NotFoundError("User", actor_id)
        return actor

    def _reviewed_counts_since(self, window_start) -> Tuple[int, int]:
        rows = self.db.exec(
            select(DeletionRequest.status, func.count(DeletionRequest.id))
            .where(
                DeletionRequest.status.in_(list(REVIEWED_STATUSES)),
                DeletionRequest.reviewed_at >= window_start
            )
            .group_by(DeletionRequest.status)
        ).all()
        counts = {status: count for status, count in rows}
        return (
            counts.get(DeletionRequestStatus.APPROVED, 0),
            counts.get(DeletionRequestStatus.REJECTED, 0),
        )
