"""
State machine for the deletion request lifecycle.

    pending --approve--> approved
    pending --reject---> rejected
    pending --cancel---> cancelled

Every transition MUST go through here. The machine only mutates the request
object it is handed; persistence belongs to the caller's transaction.
"""
import enum
import logging
from typing import Dict, Optional

from app.core.clock import Clock, SystemClock
from app.core.exceptions import StaleStateError, TransitionNotPermittedError
from app.models.deletion_request import DeletionRequest, DeletionRequestStatus
from app.models.user import User

logger = logging.getLogger(__name__)


class DeletionRequestEvent(str, enum.Enum):
    """Events that move a request out of pending."""
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


TRANSITIONS: Dict[DeletionRequestStatus, Dict[DeletionRequestEvent, DeletionRequestStatus]] = {
    DeletionRequestStatus.PENDING: {
        DeletionRequestEvent.APPROVE: DeletionRequestStatus.APPROVED,
        DeletionRequestEvent.REJECT: DeletionRequestStatus.REJECTED,
        DeletionRequestEvent.CANCEL: DeletionRequestStatus.CANCELLED,
    },
    DeletionRequestStatus.APPROVED: {},
    DeletionRequestStatus.REJECTED: {},
    DeletionRequestStatus.CANCELLED: {},
}

REVIEW_EVENTS = frozenset({DeletionRequestEvent.APPROVE, DeletionRequestEvent.REJECT})


class DeletionRequestStateMachine:
    """Enforces legal transitions and who may fire them."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def validate(
        self,
        request: DeletionRequest,
        event: DeletionRequestEvent,
        actor: User
    ) -> DeletionRequestStatus:
        """
        Check that ``event`` is legal for ``actor`` on ``request`` right now.

        Returns the target status. Raises StaleStateError when the request has
        already left pending, TransitionNotPermittedError when the actor lacks
        the right to fire the event.
        """
        target = TRANSITIONS[request.status].get(event)
        if target is None:
            raise StaleStateError(request.id, request.status.value, event.value)

        if event in REVIEW_EVENTS:
            if not actor.is_admin:
                raise TransitionNotPermittedError(request.id, actor.id, event.value)
        elif actor.id != request.requested_by:
            raise TransitionNotPermittedError(request.id, actor.id, event.value)

        return target

    def transition(
        self,
        request: DeletionRequest,
        event: DeletionRequestEvent,
        actor: User,
        reviewer_email: Optional[str] = None,
        review_comment: Optional[str] = None
    ) -> DeletionRequest:
        """
        Apply ``event`` to ``request``.

        Review events stamp reviewer id, email, comment and time. The comment
        is stored exactly as given: None stays None, "" stays "".
        """
        target = self.validate(request, event, actor)
        now = self.clock.now()

        previous = request.status
        request.status = target
        request.updated_at = now

        if event in REVIEW_EVENTS:
            request.reviewed_by = actor.id
            request.reviewer_email = reviewer_email if reviewer_email is not None else actor.email
            request.review_comment = review_comment
            request.reviewed_at = now

        logger.info(
            f"Deletion request {request.id}: {previous.value} -> {target.value} by actor {actor.id}"
        )
        return request
