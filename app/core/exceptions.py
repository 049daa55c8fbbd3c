"""
Typed exceptions for the deletion-request workflow.

Every error carries a machine-readable ``code`` and structured attributes so
callers branch on type and data, never on message text.

    DeletionWorkflowError
    +-- ValidationError
    |   +-- DuplicatePendingRequestError
    +-- AuthorizationError
    |   +-- TransitionNotPermittedError  (also a TransitionError)
    +-- TransitionError
    |   +-- StaleStateError
    +-- NotFoundError
    +-- TransactionError
    +-- ImmutabilityViolationError
"""

from typing import Any, Dict, Optional


class DeletionWorkflowError(Exception):
    """Base class for all expected workflow failures."""

    code: str = "DELETION_WORKFLOW_ERROR"
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(DeletionWorkflowError):
    """Malformed input. Raised before any transaction opens."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class DuplicatePendingRequestError(ValidationError):
    """The asset already has a pending deletion request."""

    code = "DUPLICATE_PENDING_REQUEST"

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(
            f"Asset {asset_id} already has a pending deletion request",
            field="asset_id",
        )


class AuthorizationError(DeletionWorkflowError):
    """Denied by the policy guard."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str, actor_id: Optional[int] = None, action: Optional[str] = None):
        self.actor_id = actor_id
        self.action = action
        super().__init__(message)


class TransitionError(DeletionWorkflowError):
    """A state machine transition could not be honoured."""

    code = "TRANSITION_ERROR"


class StaleStateError(TransitionError):
    """The request is no longer in the state the caller assumed."""

    code = "STALE_STATE"

    def __init__(self, request_id: int, current_status: str, attempted: str):
        self.request_id = request_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Deletion request {request_id} is {current_status}; cannot {attempted}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["current_status"] = self.current_status
        return data


class TransitionNotPermittedError(TransitionError, AuthorizationError):
    """The actor may not fire this event on this request."""

    code = "TRANSITION_NOT_PERMITTED"

    def __init__(self, request_id: int, actor_id: Optional[int], event: str):
        self.request_id = request_id
        AuthorizationError.__init__(
            self,
            f"Actor {actor_id} may not {event} deletion request {request_id}",
            actor_id=actor_id,
            action=event,
        )


class NotFoundError(DeletionWorkflowError):
    """Referenced request, asset or user does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class TransactionError(DeletionWorkflowError):
    """Storage failure inside a unit of work. Nothing was persisted."""

    code = "TRANSACTION_ERROR"

    def __init__(self, operation: str, reason: str, retryable: bool = False):
        self.operation = operation
        self.reason = reason
        self.retryable = retryable
        super().__init__(f"{operation} failed and was rolled back: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = self.retryable
        return data


class ImmutabilityViolationError(DeletionWorkflowError):
    """Attempt to modify or delete an append-only or terminal record."""

    code = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id}: {reason}")
