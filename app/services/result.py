from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from app.core.exceptions import DeletionWorkflowError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Outcome of a workflow operation: a value or an expected error."""
    value: Optional[T] = None
    error: Optional[DeletionWorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: DeletionWorkflowError) -> "ServiceResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
