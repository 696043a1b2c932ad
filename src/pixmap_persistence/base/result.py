from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from pixmap_persistence.base.exceptions import ErrorCode, RepositoryException

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Discriminated success/failure value handed to callers above the repositories.

    A successful result carries `value` (which may legitimately be None for a
    lookup that found nothing). A failed result carries the classified
    `error_code`, the `operation` that failed and a human-readable `message`
    meant to be surfaced as-is.
    """

    is_success: bool
    value: Optional[T] = None
    error_code: Optional[ErrorCode] = None
    operation: str = ""
    message: str = ""

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(is_success=True, value=value)

    @classmethod
    def failure(
        cls, error_code: ErrorCode, message: str, operation: str = ""
    ) -> "Result[T]":
        return cls(
            is_success=False,
            error_code=error_code,
            operation=operation,
            message=message,
        )

    @classmethod
    def from_exception(cls, error: RepositoryException) -> "Result[T]":
        return cls.failure(error.code, str(error), error.operation)

    def unwrap(self) -> Optional[T]:
        """Return the value or raise the failure as a RepositoryException."""
        if self.is_success:
            return self.value
        raise RepositoryException(self.message, code=self.error_code, operation=self.operation)
