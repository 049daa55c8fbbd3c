"""
Policy Guard

Application-level authorization for the deletion workflow. Every predicate
is pure: it looks only at the actor and the state snapshot the caller hands
in, never at the database.
"""

import logging
from typing import Optional

from app.core.exceptions import AuthorizationError, DuplicatePendingRequestError
from app.models.asset import Asset
from app.models.deletion_request import DeletionRequest, DeletionRequestStatus
from app.models.user import User

logger = logging.getLogger(__name__)


class PolicyGuard:
    """Decides who may submit, cancel, review, or directly delete."""

    def owns_asset(self, actor: User, asset: Asset) -> bool:
        return actor.is_admin or asset.created_by == actor.id

    def can_submit(self, actor: Optional[User], asset: Asset, has_pending_request: bool) -> bool:
        """Owner (or an admin acting as owner) and nothing pending yet."""
        if actor is None or not actor.is_active:
            return False
        return self.owns_asset(actor, asset) and not has_pending_request

    def can_cancel(self, actor: Optional[User], request: DeletionRequest) -> bool:
        if actor is None or not actor.is_active:
            return False
        return (
            request.requested_by == actor.id
            and request.status == DeletionRequestStatus.PENDING
        )

    def can_review(self, actor: Optional[User]) -> bool:
        return actor is not None and actor.is_active and actor.is_admin

    def can_directly_delete(self, actor: Optional[User]) -> bool:
        return self.can_review(actor)

    # The authorize_* variants report the reason a predicate failed.

    def authorize_submit(self, actor: Optional[User], asset: Asset, has_pending_request: bool) -> None:
        if self.can_submit(actor, asset, has_pending_request):
            return
        if actor is None or not actor.is_active or not self.owns_asset(actor, asset):
            self._deny(actor, "submit", "You can only request deletion of assets you created")
        raise DuplicatePendingRequestError(asset.id)

    def authorize_cancel(self, actor: Optional[User], request: DeletionRequest) -> None:
        """
        Ownership is checked here; a non-pending status is left to the state
        machine, which reports it as stale state rather than a denial.
        """
        if actor is None or not actor.is_active or request.requested_by != actor.id:
            self._deny(actor, "cancel", "You can only cancel your own deletion requests")

    def authorize_review(self, actor: Optional[User]) -> None:
        if not self.can_review(actor):
            self._deny(actor, "review", "Only administrators can review deletion requests")

    def authorize_direct_delete(self, actor: Optional[User]) -> None:
        if not self.can_directly_delete(actor):
            self._deny(actor, "delete", "Only administrators can delete assets")

    def _deny(self, actor: Optional[User], action: str, message: str) -> None:
        actor_id = actor.id if actor is not None else None
        logger.warning(f"Policy denied {action} for actor {actor_id}")
        raise AuthorizationError(message, actor_id=actor_id, action=action)


policy_guard = PolicyGuard()
