"""
ORM-level immutability enforcement.

Audit log rows are append-only. Deletion requests are frozen once they reach
a terminal status. Both rules are checked in mapper events, before any SQL
reaches the database.
"""

import logging

from sqlalchemy import event, inspect

from app.core.exceptions import ImmutabilityViolationError
from app.models.audit_log import AuditLog
from app.models.deletion_request import DeletionRequest, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


def _block_audit_log_update(mapper, connection, target):
    logger.error(f"Blocked UPDATE of audit log entry {target.id}")
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=target.id,
        reason="Audit log entries are immutable and cannot be modified",
    )


def _block_audit_log_delete(mapper, connection, target):
    logger.error(f"Blocked DELETE of audit log entry {target.id}")
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=target.id,
        reason="Audit log entries cannot be deleted",
    )


def _block_terminal_request_update(mapper, connection, target):
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if previous in TERMINAL_STATUSES:
        logger.error(f"Blocked UPDATE of resolved deletion request {target.id} ({previous})")
        raise ImmutabilityViolationError(
            entity_type="DeletionRequest",
            entity_id=target.id,
            reason=f"Request is {previous.value} and can no longer change",
        )


def _block_request_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="DeletionRequest",
        entity_id=target.id,
        reason="Deletion requests are kept as history and cannot be deleted",
    )


_LISTENERS = (
    (AuditLog, "before_update", _block_audit_log_update),
    (AuditLog, "before_delete", _block_audit_log_delete),
    (DeletionRequest, "before_update", _block_terminal_request_update),
    (DeletionRequest, "before_delete", _block_request_delete),
)


def register_immutability_listeners() -> None:
    """Attach the listeners. Safe to call more than once."""
    for target, name, fn in _LISTENERS:
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    for target, name, fn in _LISTENERS:
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
