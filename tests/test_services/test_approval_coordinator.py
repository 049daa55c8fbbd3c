import pytest
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import delete
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, func, select

from app.core.exceptions import (
    AuthorizationError,
    DuplicatePendingRequestError,
    NotFoundError,
    StaleStateError,
    TransactionError,
)
from app.models.asset import Asset
from app.models.audit_log import AuditAction, AuditEntityType, AuditLog
from app.models.deletion_request import DeletionRequest, DeletionRequestStatus
from app.services.approval_coordinator import ApprovalTransactionCoordinator

SYSTEM_COMMENT = "Auto-approved via direct admin deletion"


@pytest.fixture
def coordinator(session: Session, clock):
    return ApprovalTransactionCoordinator(session, clock=clock)


@pytest.fixture
def pending(coordinator, asset, owner):
    return coordinator.submit(asset.id, owner, "no longer needed")


def audit_count(session: Session) -> int:
    return session.exec(select(func.count(AuditLog.id))).one()


def audit_entries(session: Session, action: AuditAction):
    return session.exec(select(AuditLog).where(AuditLog.action == action)).all()


def pending_for_asset(session: Session, asset_id: int):
    return session.exec(
        select(DeletionRequest).where(
            DeletionRequest.asset_id == asset_id,
            DeletionRequest.status == DeletionRequestStatus.PENDING,
        )
    ).all()


class TestSubmit:
    def test_creates_pending_request_with_snapshot(self, session, coordinator, asset, owner):
        request = coordinator.submit(asset.id, owner, "no longer needed")

        assert request.status == DeletionRequestStatus.PENDING
        assert request.asset_id == asset.id
        assert request.asset_name == "Laptop A1"
        assert request.asset_cost == Decimal("100.00")
        assert request.requester_email == owner.email
        assert request.reviewed_by is None

        entries = audit_entries(session, AuditAction.DELETION_REQUEST_SUBMITTED)
        assert len(entries) == 1
        assert entries[0].entity_id == request.id
        assert entries[0].entity_data["justification"] == "no longer needed"

    def test_second_pending_request_is_rejected(self, session, coordinator, asset, owner, pending):
        before = audit_count(session)

        with pytest.raises(DuplicatePendingRequestError):
            coordinator.submit(asset.id, owner, "still not needed, really")

        assert len(pending_for_asset(session, asset.id)) == 1
        assert audit_count(session) == before

    def test_timestamps_round_trip_as_naive_utc(self, session, coordinator, clock, asset, owner):
        request = coordinator.submit(asset.id, owner, "no longer needed")
        session.expire_all()

        stored = session.get(DeletionRequest, request.id)
        entry = audit_entries(session, AuditAction.DELETION_REQUEST_SUBMITTED)[0]
        assert stored.created_at == clock.now()
        assert stored.created_at.tzinfo is None
        assert entry.created_at.tzinfo is None
        assert session.get(type(owner), owner.id).created_at.tzinfo is None

    def test_locks_request_row_before_asset_row(self, coordinator, asset, owner):
        locked = []
        lock_request = coordinator._lock_pending_request_for_asset
        lock_asset = coordinator._lock_asset

        def request_first(asset_id):
            locked.append("request")
            return lock_request(asset_id)

        def asset_second(asset_id):
            locked.append("asset")
            return lock_asset(asset_id)

        with patch.object(coordinator, "_lock_pending_request_for_asset", side_effect=request_first), \
                patch.object(coordinator, "_lock_asset", side_effect=asset_second):
            coordinator.submit(asset.id, owner, "no longer needed")

        assert locked == ["request", "asset"]

    def test_racing_insert_maps_to_duplicate(self, session, coordinator, asset, owner, pending):
        before = audit_count(session)

        # Pre-check sees nothing, so the partial unique index rejects the insert
        with patch.object(coordinator, "_lock_pending_request_for_asset", return_value=None):
            with pytest.raises(DuplicatePendingRequestError):
                coordinator.submit(asset.id, owner, "still not needed, really")

        assert [r.id for r in pending_for_asset(session, asset.id)] == [pending.id]
        assert audit_count(session) == before

    def test_other_integrity_failures_are_not_duplicates(self, session, coordinator, asset, owner):
        # The boundary service trims and checks length; the CHECK constraint is the backstop
        with pytest.raises(TransactionError) as exc_info:
            coordinator.submit(asset.id, owner, "broken")

        assert exc_info.value.retryable is False
        assert pending_for_asset(session, asset.id) == []
        assert audit_count(session) == 0

    def test_non_owner_cannot_submit(self, coordinator, asset, other_user):
        with pytest.raises(AuthorizationError):
            coordinator.submit(asset.id, other_user, "I do not like this laptop")

    def test_missing_asset(self, coordinator, owner):
        with pytest.raises(NotFoundError) as exc_info:
            coordinator.submit(9999, owner, "no longer needed")
        assert exc_info.value.entity_type == "Asset"

    def test_resubmission_after_rejection(self, coordinator, asset, owner, admin, pending):
        coordinator.reject(pending.id, admin, comment="still in use")

        again = coordinator.submit(asset.id, owner, "really no longer needed now")

        assert again.id != pending.id
        assert again.status == DeletionRequestStatus.PENDING


class TestApprove:
    def test_approval_deletes_asset_and_writes_both_entries(self, session, coordinator, asset, admin, pending):
        asset_id = asset.id
        before = audit_count(session)

        outcome = coordinator.approve(pending.id, admin)

        assert outcome.asset_deleted is True
        assert outcome.direct_deletion is False
        assert outcome.request.status == DeletionRequestStatus.APPROVED
        assert outcome.request.review_comment is None
        assert outcome.request.reviewed_by == admin.id
        assert len(outcome.audit_log_ids) == 2

        assert session.get(Asset, asset_id) is None
        stored = session.get(DeletionRequest, pending.id)
        assert stored.status == DeletionRequestStatus.APPROVED
        assert stored.asset_id is None
        assert stored.review_comment is None

        assert audit_count(session) == before + 2
        deleted = audit_entries(session, AuditAction.ASSET_DELETED)
        approved = audit_entries(session, AuditAction.DELETION_REQUEST_APPROVED)
        assert len(deleted) == 1 and len(approved) == 1
        assert deleted[0].entity_type == AuditEntityType.ASSET
        assert deleted[0].entity_id == asset_id
        assert approved[0].entity_id == pending.id
        assert deleted[0].entity_data["direct_deletion"] is False
        assert deleted[0].entity_data["deletion_request_id"] == pending.id
        assert deleted[0].entity_data["cost"] == "100.00"
        assert deleted[0].entity_data["category"] == "IT Equipment"
        assert deleted[0].entity_data["department"] == "Engineering"
        assert approved[0].entity_data["direct_deletion"] is False

    @pytest.mark.parametrize("comment", [None, "", "Disposed through e-waste vendor"])
    def test_comment_is_stored_exactly(self, session, coordinator, admin, pending, comment):
        coordinator.approve(pending.id, admin, comment=comment)

        assert session.get(DeletionRequest, pending.id).review_comment == comment

    def test_second_approval_is_stale(self, session, coordinator, asset, admin, second_admin, pending):
        coordinator.approve(pending.id, admin, comment="first")
        before = audit_count(session)

        with pytest.raises(StaleStateError) as exc_info:
            coordinator.approve(pending.id, second_admin, comment="second")

        assert exc_info.value.current_status == "approved"
        assert audit_count(session) == before
        stored = session.get(DeletionRequest, pending.id)
        assert stored.reviewed_by == admin.id
        assert stored.review_comment == "first"

    def test_non_admin_cannot_approve(self, session, coordinator, asset, owner, pending):
        with pytest.raises(AuthorizationError):
            coordinator.approve(pending.id, owner)

        assert session.get(Asset, asset.id) is not None

    def test_missing_request(self, coordinator, admin):
        with pytest.raises(NotFoundError):
            coordinator.approve(424242, admin)

    def test_asset_already_gone_still_approves(self, session, coordinator, asset, admin, pending):
        session.exec(delete(Asset).where(Asset.id == asset.id))
        session.commit()
        session.expire_all()

        outcome = coordinator.approve(pending.id, admin)

        assert outcome.asset_deleted is False
        assert outcome.request.status == DeletionRequestStatus.APPROVED
        assert audit_entries(session, AuditAction.ASSET_DELETED) == []
        approved = audit_entries(session, AuditAction.DELETION_REQUEST_APPROVED)
        assert approved[0].entity_data["asset_already_deleted"] is True

    def test_audit_failure_rolls_back_everything(self, session, coordinator, asset, admin, pending):
        asset_id = asset.id
        before = audit_count(session)
        real_append = coordinator.audit_writer.append
        calls = []

        def flaky_append(entry):
            calls.append(entry.action)
            if len(calls) == 2:
                raise TransactionError("audit_log_append", "disk full")
            return real_append(entry)

        with patch.object(coordinator.audit_writer, "append", side_effect=flaky_append):
            with pytest.raises(TransactionError):
                coordinator.approve(pending.id, admin)

        assert session.get(Asset, asset_id) is not None
        stored = session.get(DeletionRequest, pending.id)
        assert stored.status == DeletionRequestStatus.PENDING
        assert stored.reviewed_by is None
        assert stored.asset_id == asset_id
        assert audit_count(session) == before

    def test_lock_timeout_is_retryable(self, session, coordinator, asset, admin, pending):
        locked = OperationalError("DELETE FROM assets", {}, Exception("database is locked"))

        with patch.object(coordinator, "_delete_asset", side_effect=locked):
            with pytest.raises(TransactionError) as exc_info:
                coordinator.approve(pending.id, admin)

        assert exc_info.value.retryable is True
        assert exc_info.value.to_dict()["retryable"] is True
        assert session.get(DeletionRequest, pending.id).status == DeletionRequestStatus.PENDING
        assert session.get(Asset, asset.id) is not None

    def test_lost_connection_propagates(self, coordinator, admin, pending):
        lost = OperationalError("SELECT 1", {}, Exception("server closed the connection"), connection_invalidated=True)

        with patch.object(coordinator, "_delete_asset", side_effect=lost):
            with pytest.raises(OperationalError):
                coordinator.approve(pending.id, admin)


class TestRejectAndCancel:
    @pytest.mark.parametrize("comment", [None, "Still assigned to a project"])
    def test_reject_keeps_asset(self, session, coordinator, asset, admin, pending, comment):
        before = audit_count(session)

        request = coordinator.reject(pending.id, admin, comment=comment)

        assert request.status == DeletionRequestStatus.REJECTED
        assert request.review_comment == comment
        assert request.reviewer_email == admin.email
        assert session.get(Asset, asset.id) is not None
        assert audit_count(session) == before + 1
        assert audit_entries(session, AuditAction.DELETION_REQUEST_REJECTED)[0].entity_id == pending.id

    def test_requester_cancels(self, session, coordinator, asset, owner, pending):
        request = coordinator.cancel(pending.id, owner)

        assert request.status == DeletionRequestStatus.CANCELLED
        assert request.reviewed_at is None
        assert session.get(Asset, asset.id) is not None
        assert len(audit_entries(session, AuditAction.DELETION_REQUEST_CANCELLED)) == 1

    def test_other_user_cannot_cancel(self, session, coordinator, other_user, pending):
        with pytest.raises(AuthorizationError):
            coordinator.cancel(pending.id, other_user)

        assert session.get(DeletionRequest, pending.id).status == DeletionRequestStatus.PENDING

    def test_cannot_cancel_after_rejection(self, session, coordinator, owner, admin, pending):
        coordinator.reject(pending.id, admin, comment="no")
        before = audit_count(session)

        with pytest.raises(StaleStateError):
            coordinator.cancel(pending.id, owner)

        stored = session.get(DeletionRequest, pending.id)
        assert stored.status == DeletionRequestStatus.REJECTED
        assert stored.review_comment == "no"
        assert audit_count(session) == before


class TestDirectDeletion:
    def test_auto_approves_pending_request(self, session, coordinator, asset, admin, pending):
        asset_id = asset.id

        outcome = coordinator.delete_asset_directly(asset_id, admin)

        assert outcome.direct_deletion is True
        assert outcome.asset_deleted is True
        assert outcome.request.id == pending.id
        assert session.get(Asset, asset_id) is None
        assert pending_for_asset(session, asset_id) == []

        stored = session.get(DeletionRequest, pending.id)
        assert stored.status == DeletionRequestStatus.APPROVED
        assert stored.review_comment == SYSTEM_COMMENT
        assert stored.reviewed_by == admin.id

        approved = audit_entries(session, AuditAction.DELETION_REQUEST_APPROVED)
        deleted = audit_entries(session, AuditAction.ASSET_DELETED)
        assert approved[0].entity_data["direct_deletion"] is True
        assert deleted[0].entity_data["direct_deletion"] is True
        assert deleted[0].entity_data["had_pending_request"] is True
        assert deleted[0].entity_data["deletion_request_id"] == pending.id

    def test_without_pending_request(self, session, coordinator, asset, admin, owner):
        asset_id = asset.id

        outcome = coordinator.delete_asset_directly(asset_id, admin)

        assert outcome.request is None
        assert len(outcome.audit_log_ids) == 1
        assert session.get(Asset, asset_id) is None
        assert audit_entries(session, AuditAction.DELETION_REQUEST_APPROVED) == []
        snapshot = audit_entries(session, AuditAction.ASSET_DELETED)[0].entity_data
        assert snapshot["had_pending_request"] is False
        assert snapshot["created_by"] == owner.id
        assert snapshot["creator_email"] == owner.email

    def test_detaches_resolved_request_history(self, session, coordinator, asset, owner, admin):
        first = coordinator.submit(asset.id, owner, "no longer needed")
        coordinator.reject(first.id, admin, comment="keep it")

        coordinator.delete_asset_directly(asset.id, admin)

        stored = session.get(DeletionRequest, first.id)
        assert stored.asset_id is None
        assert stored.status == DeletionRequestStatus.REJECTED
        assert stored.review_comment == "keep it"

    def test_requires_admin(self, session, coordinator, asset, owner):
        with pytest.raises(AuthorizationError):
            coordinator.delete_asset_directly(asset.id, owner)

        assert session.get(Asset, asset.id) is not None

    def test_missing_asset(self, coordinator, admin):
        with pytest.raises(NotFoundError):
            coordinator.delete_asset_directly(31337, admin)
