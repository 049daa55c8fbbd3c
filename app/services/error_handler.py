"""
Error Handling Service

Classifies workflow and storage errors, logs them, and maps them to HTTP
responses. Errors are logged only; they never produce audit entries.
"""

import logging
import traceback
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple
from enum import Enum
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import utcnow
from app.core.exceptions import (
    AuthorizationError,
    DeletionWorkflowError,
    DuplicatePendingRequestError,
    ImmutabilityViolationError,
    NotFoundError,
    StaleStateError,
    TransactionError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    SYSTEM = "system"


# First match wins. TransitionNotPermittedError classifies as AUTHORIZATION,
# a duplicate pending request as CONFLICT.
_CLASSIFICATION: Tuple[Tuple[type, ErrorCategory, ErrorSeverity], ...] = (
    (DuplicatePendingRequestError, ErrorCategory.CONFLICT, ErrorSeverity.LOW),
    (ValidationError, ErrorCategory.VALIDATION, ErrorSeverity.LOW),
    (AuthorizationError, ErrorCategory.AUTHORIZATION, ErrorSeverity.MEDIUM),
    (NotFoundError, ErrorCategory.NOT_FOUND, ErrorSeverity.LOW),
    (StaleStateError, ErrorCategory.CONFLICT, ErrorSeverity.LOW),
    (ImmutabilityViolationError, ErrorCategory.CONFLICT, ErrorSeverity.HIGH),
    (TransactionError, ErrorCategory.DATABASE, ErrorSeverity.HIGH),
    (DeletionWorkflowError, ErrorCategory.CONFLICT, ErrorSeverity.MEDIUM),
    (SQLAlchemyError, ErrorCategory.DATABASE, ErrorSeverity.CRITICAL),
)

STATUS_CODES = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.DATABASE: 503,
    ErrorCategory.SYSTEM: 500,
}


class ErrorRecord:
    """Represents an error occurrence with context."""

    def __init__(
        self,
        error: Exception,
        category: ErrorCategory,
        severity: ErrorSeverity,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        operation: Optional[str] = None
    ):
        self.error = error
        self.category = category
        self.severity = severity
        self.context = context or {}
        self.user_id = user_id
        self.operation = operation
        self.timestamp = utcnow()
        self.error_id = f"{category.value}_{uuid4().hex[:12]}"

        self.error_type = type(error).__name__
        self.error_message = str(error)
        self.stack_trace = traceback.format_exc()


class ErrorHandlerService:
    """Service for classifying, logging and reporting errors."""

    def __init__(self, history_size: int = 100):
        self.error_history: Deque[ErrorRecord] = deque(maxlen=history_size)

    def classify(self, error: Exception) -> Tuple[ErrorCategory, ErrorSeverity]:
        """Classify error by type to determine category and severity."""
        for error_type, category, severity in _CLASSIFICATION:
            if isinstance(error, error_type):
                return category, severity
        return ErrorCategory.SYSTEM, ErrorSeverity.HIGH

    def status_code_for(self, error: Exception) -> int:
        if isinstance(error, TransactionError) and not error.retryable:
            return 500
        category, _ = self.classify(error)
        return STATUS_CODES[category]

    def handle_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        operation: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Log an error and build its report.

        Args:
            error: The exception that occurred
            context: Additional context information
            user_id: ID of the acting user, if known
            operation: Name of the operation that failed

        Returns:
            Dictionary describing the error
        """
        category, severity = self.classify(error)
        error_record = ErrorRecord(
            error=error,
            category=category,
            severity=severity,
            context=context,
            user_id=user_id,
            operation=operation
        )
        self.error_history.append(error_record)
        self._log_error(error_record)
        return self._generate_error_report(error_record)

    def _log_error(self, error_record: ErrorRecord) -> None:
        log_level = {
            ErrorSeverity.LOW: logging.INFO,
            ErrorSeverity.MEDIUM: logging.WARNING,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL
        }.get(error_record.severity, logging.ERROR)

        logger.log(
            log_level,
            f"Error {error_record.error_id}: {error_record.error_message}",
            extra={
                "error_id": error_record.error_id,
                "category": error_record.category.value,
                "severity": error_record.severity.value,
                "user_id": error_record.user_id,
                "operation": error_record.operation,
                "context": error_record.context
            }
        )

    def _generate_error_report(self, error_record: ErrorRecord) -> Dict[str, Any]:
        error = error_record.error
        if isinstance(error, DeletionWorkflowError):
            detail = error.to_dict()
        else:
            detail = {"code": "INTERNAL_ERROR", "message": "An internal error occurred. Please try again later."}

        return {
            "error_id": error_record.error_id,
            "timestamp": error_record.timestamp.isoformat(),
            "error_type": error_record.error_type,
            "category": error_record.category.value,
            "severity": error_record.severity.value,
            "operation": error_record.operation,
            "detail": detail,
        }

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics for monitoring."""
        category_counts: Dict[str, int] = {}
        severity_counts: Dict[str, int] = {}
        for error in self.error_history:
            category_counts[error.category.value] = category_counts.get(error.category.value, 0) + 1
            severity_counts[error.severity.value] = severity_counts.get(error.severity.value, 0) + 1

        return {
            "total_errors": len(self.error_history),
            "by_category": category_counts,
            "by_severity": severity_counts,
        }

    def clear_error_history(self) -> None:
        """Clear error history (for testing or maintenance)."""
        self.error_history.clear()


# Global error handler instance
error_handler = ErrorHandlerService()
