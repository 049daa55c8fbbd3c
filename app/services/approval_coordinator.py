"""
Approval Transaction Coordinator

Runs every state change of the deletion workflow as one database transaction:
lock rows (request first, then asset), re-check state inside the lock, apply
the transition, delete the asset where required, append audit entries, then
commit. Any failure rolls the whole unit back.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.core.exceptions import (
    DeletionWorkflowError,
    DuplicatePendingRequestError,
    NotFoundError,
    TransactionError,
)
from app.db.session import unit_of_work
from app.models.asset import Asset, Category, Department
from app.models.audit_log import AuditAction, AuditEntityType, AuditLogCreate
from app.models.deletion_request import (
    DeletionRequest,
    DeletionRequestRead,
    DeletionRequestStatus,
)
from app.models.user import User
from app.services.audit_service import AuditLogWriter
from app.services.deletion_state_machine import DeletionRequestEvent, DeletionRequestStateMachine
from app.services.policy_guard import PolicyGuard, policy_guard

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApprovalOutcome(BaseModel):
    """What an approval or direct deletion did."""
    request: Optional[DeletionRequestRead] = None
    asset_id: Optional[int] = None
    asset_deleted: bool = False
    direct_deletion: bool = False
    audit_log_ids: List[int] = Field(default_factory=list)


class ApprovalTransactionCoordinator:
    """Executes deletion workflow operations atomically against the store."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        policy: Optional[PolicyGuard] = None,
        state_machine: Optional[DeletionRequestStateMachine] = None
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.policy = policy or policy_guard
        self.state_machine = state_machine or DeletionRequestStateMachine(self.clock)
        self.audit_writer = AuditLogWriter(db, self.clock)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(self, asset_id: int, requester: User, justification: str) -> DeletionRequestRead:
        """Create a pending request for ``asset_id``. Justification is already validated."""
        def work() -> DeletionRequestRead:
            has_pending = self._lock_pending_request_for_asset(asset_id) is not None
            asset = self._lock_asset(asset_id)
            if asset is None:
                raise NotFoundError("Asset", asset_id)

            self.policy.authorize_submit(requester, asset, has_pending)

            now = self.clock.now()
            request = DeletionRequest(
                asset_id=asset.id,
                asset_name=asset.name,
                asset_cost=asset.cost,
                requested_by=requester.id,
                requester_email=requester.email,
                justification=justification,
                status=DeletionRequestStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(request)
            except IntegrityError as e:
                # Only a committed pending row means we lost the submission race
                if self._find_pending_request_id(asset_id) is not None:
                    raise DuplicatePendingRequestError(asset_id) from e
                raise

            self.audit_writer.append(AuditLogCreate(
                action=AuditAction.DELETION_REQUEST_SUBMITTED,
                entity_type=AuditEntityType.DELETION_REQUEST,
                entity_id=request.id,
                performed_by=requester.id,
                entity_data={
                    "asset_id": asset.id,
                    "asset_name": asset.name,
                    "justification": justification,
                },
            ))
            return DeletionRequestRead.model_validate(request)

        requester_id = requester.id
        result = self._run("submit_deletion_request", work)
        logger.info(f"Deletion request {result.id} submitted for asset {asset_id} by user {requester_id}")
        return result

    def cancel(self, request_id: int, actor: User) -> DeletionRequestRead:
        """Cancel a pending request. Only its requester may do so."""
        def work() -> DeletionRequestRead:
            request = self._lock_request(request_id)
            self.policy.authorize_cancel(actor, request)
            self.state_machine.transition(request, DeletionRequestEvent.CANCEL, actor)
            self.db.flush()

            self.audit_writer.append(AuditLogCreate(
                action=AuditAction.DELETION_REQUEST_CANCELLED,
                entity_type=AuditEntityType.DELETION_REQUEST,
                entity_id=request.id,
                performed_by=actor.id,
                entity_data={
                    "asset_id": request.asset_id,
                    "asset_name": request.asset_name,
                },
            ))
            return DeletionRequestRead.model_validate(request)

        return self._run("cancel_deletion_request", work)

    def approve(
        self,
        request_id: int,
        reviewer: User,
        reviewer_email: Optional[str] = None,
        comment: Optional[str] = None
    ) -> ApprovalOutcome:
        """
        Approve a pending request and permanently delete its asset.

        If the asset is already gone the request is still approved; no second
        ``asset_deleted`` entry is written in that case.
        """
        def work() -> ApprovalOutcome:
            self.policy.authorize_review(reviewer)
            request = self._lock_request(request_id)
            self.state_machine.validate(request, DeletionRequestEvent.APPROVE, reviewer)

            asset_id = request.asset_id
            asset = self._lock_asset(asset_id) if asset_id is not None else None
            asset_snapshot = self._asset_snapshot(asset) if asset is not None else None

            self.state_machine.transition(
                request,
                DeletionRequestEvent.APPROVE,
                reviewer,
                reviewer_email=reviewer_email,
                review_comment=comment,
            )
            self.db.flush()

            if asset is not None:
                self._delete_asset(asset)

            audit_ids = []
            if asset_snapshot is not None:
                audit_ids.append(self.audit_writer.append(AuditLogCreate(
                    action=AuditAction.ASSET_DELETED,
                    entity_type=AuditEntityType.ASSET,
                    entity_id=asset_id,
                    performed_by=reviewer.id,
                    entity_data={
                        **asset_snapshot,
                        "direct_deletion": False,
                        "deleted_via_request": True,
                        "deletion_request_id": request.id,
                    },
                )))
            audit_ids.append(self.audit_writer.append(AuditLogCreate(
                action=AuditAction.DELETION_REQUEST_APPROVED,
                entity_type=AuditEntityType.DELETION_REQUEST,
                entity_id=request.id,
                performed_by=reviewer.id,
                entity_data={
                    "asset_id": asset_id,
                    "asset_name": request.asset_name,
                    "review_comment": comment,
                    "direct_deletion": False,
                    "asset_already_deleted": asset_snapshot is None,
                },
            )))

            return ApprovalOutcome(
                request=DeletionRequestRead.model_validate(request),
                asset_id=asset_id,
                asset_deleted=asset_snapshot is not None,
                direct_deletion=False,
                audit_log_ids=audit_ids,
            )

        reviewer_id = reviewer.id
        outcome = self._run("approve_deletion_request", work)
        logger.info(f"Deletion request {request_id} approved by {reviewer_id}; asset {outcome.asset_id} deleted={outcome.asset_deleted}")
        return outcome

    def reject(
        self,
        request_id: int,
        reviewer: User,
        reviewer_email: Optional[str] = None,
        comment: Optional[str] = None
    ) -> DeletionRequestRead:
        """Reject a pending request. The asset is left untouched."""
        def work() -> DeletionRequestRead:
            self.policy.authorize_review(reviewer)
            request = self._lock_request(request_id)
            self.state_machine.transition(
                request,
                DeletionRequestEvent.REJECT,
                reviewer,
                reviewer_email=reviewer_email,
                review_comment=comment,
            )
            self.db.flush()

            self.audit_writer.append(AuditLogCreate(
                action=AuditAction.DELETION_REQUEST_REJECTED,
                entity_type=AuditEntityType.DELETION_REQUEST,
                entity_id=request.id,
                performed_by=reviewer.id,
                entity_data={
                    "asset_id": request.asset_id,
                    "asset_name": request.asset_name,
                    "review_comment": comment,
                },
            ))
            return DeletionRequestRead.model_validate(request)

        return self._run("reject_deletion_request", work)

    def delete_asset_directly(self, asset_id: int, admin: User) -> ApprovalOutcome:
        """
        Admin override: delete an asset without a request.

        A pending request for the asset is auto-approved with the system
        comment inside the same transaction, so no pending request is left
        pointing at a deleted asset.
        """
        def work() -> ApprovalOutcome:
            self.policy.authorize_direct_delete(admin)

            pending = self._lock_pending_request_for_asset(asset_id)
            asset = self._lock_asset(asset_id)
            if asset is None:
                raise NotFoundError("Asset", asset_id)
            if pending is None:
                # A submission may have committed between the two locks
                pending = self._lock_pending_request_for_asset(asset_id)

            asset_snapshot = self._asset_snapshot(asset)
            comment = settings.direct_deletion_comment
            audit_ids = []

            if pending is not None:
                self.state_machine.transition(
                    pending,
                    DeletionRequestEvent.APPROVE,
                    admin,
                    reviewer_email=admin.email,
                    review_comment=comment,
                )
                self.db.flush()

            self._delete_asset(asset)

            if pending is not None:
                audit_ids.append(self.audit_writer.append(AuditLogCreate(
                    action=AuditAction.DELETION_REQUEST_APPROVED,
                    entity_type=AuditEntityType.DELETION_REQUEST,
                    entity_id=pending.id,
                    performed_by=admin.id,
                    entity_data={
                        "asset_id": asset_id,
                        "asset_name": pending.asset_name,
                        "review_comment": comment,
                        "direct_deletion": True,
                        "asset_already_deleted": False,
                    },
                )))
            audit_ids.append(self.audit_writer.append(AuditLogCreate(
                action=AuditAction.ASSET_DELETED,
                entity_type=AuditEntityType.ASSET,
                entity_id=asset_id,
                performed_by=admin.id,
                entity_data={
                    **asset_snapshot,
                    "direct_deletion": True,
                    "had_pending_request": pending is not None,
                    "deletion_request_id": pending.id if pending is not None else None,
                },
            )))

            return ApprovalOutcome(
                request=DeletionRequestRead.model_validate(pending) if pending is not None else None,
                asset_id=asset_id,
                asset_deleted=True,
                direct_deletion=True,
                audit_log_ids=audit_ids,
            )

        admin_id = admin.id
        outcome = self._run("delete_asset_directly", work)
        logger.info(f"Asset {asset_id} deleted directly by admin {admin_id}; auto-approved request: {outcome.request.id if outcome.request else None}")
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, operation: str, work: Callable[[], T]) -> T:
        """Run ``work`` as one unit of work and map storage failures."""
        try:
            with unit_of_work(self.db):
                return work()
        except DeletionWorkflowError as e:
            logger.warning(f"{operation} rolled back: {e.code} {e.message}")
            raise
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.error(f"{operation} lost its database connection: {e}")
                raise
            retryable = isinstance(e, OperationalError)
            logger.error(f"{operation} rolled back (retryable={retryable}): {e}")
            raise TransactionError(operation, str(e.orig), retryable=retryable) from e
        except SQLAlchemyError as e:
            logger.error(f"{operation} rolled back: {e}")
            raise TransactionError(operation, str(e)) from e

    def _lock_request(self, request_id: int) -> DeletionRequest:
        request = self.db.exec(
            select(DeletionRequest)
            .where(DeletionRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if request is None:
            raise NotFoundError("DeletionRequest", request_id)
        return request

    def _lock_pending_request_for_asset(self, asset_id: int) -> Optional[DeletionRequest]:
        return self.db.exec(
            select(DeletionRequest)
            .where(
                DeletionRequest.asset_id == asset_id,
                DeletionRequest.status == DeletionRequestStatus.PENDING
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()

    def _find_pending_request_id(self, asset_id: int) -> Optional[int]:
        return self.db.exec(
            select(DeletionRequest.id)
            .where(
                DeletionRequest.asset_id == asset_id,
                DeletionRequest.status == DeletionRequestStatus.PENDING
            )
        ).first()

    def _lock_asset(self, asset_id: int) -> Optional[Asset]:
        return self.db.exec(
            select(Asset)
            .where(Asset.id == asset_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()

    def _delete_asset(self, asset: Asset) -> None:
        """Detach request history from the asset, then delete it."""
        self.db.exec(
            update(DeletionRequest)
            .where(DeletionRequest.asset_id == asset.id)
            .values(asset_id=None)
        )
        self.db.delete(asset)
        self.db.flush()

    def _asset_snapshot(self, asset: Asset) -> Dict[str, Any]:
        category = self.db.get(Category, asset.category_id)
        department = self.db.get(Department, asset.department_id)
        creator = self.db.get(User, asset.created_by)
        return {
            "name": asset.name,
            "category": category.name if category else None,
            "department": department.name if department else None,
            "cost": str(asset.cost),
            "date_purchased": asset.date_purchased.isoformat(),
            "created_by": asset.created_by,
            "creator_email": creator.email if creator else None,
        }
