"""
Result Pattern Implementation
Services return a Result instead of raising for expected outcomes such as
validation errors, quota exhaustion or missing records.
"""

from typing import TypeVar, Generic, Optional, Any, Dict, List
from dataclasses import dataclass

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """
    Either a successful result carrying data, or a failure carrying an error.

    Examples:
        result = Result.success(batch)
        if result.is_success:
            print(result.data.sent)

        result = Result.failure("Monthly send limit reached", code="QUOTA_EXCEEDED",
                                metadata={'remaining': 0})
        if result.is_failure:
            print(result.error_code)

        result = Result.validation_error({'customer_ids': ['At most 25 recipients']})
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    field_errors: Optional[Dict[str, List[str]]] = None

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """
        Create a successful result.

        Args:
            data: The successful result data
            metadata: Optional metadata about the operation
        """
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failure(cls,
                error: str,
                code: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None,
                field_errors: Optional[Dict[str, List[str]]] = None) -> 'Result[T]':
        """
        Create a failure result.

        Args:
            error: Error message describing the failure
            code: Error code for programmatic handling (see services.enums.ErrorCode)
            metadata: Optional details about the failure, e.g. quota remaining
            field_errors: Per-field validation messages
        """
        return cls(
            success=False,
            error=error,
            error_code=code,
            metadata=metadata,
            field_errors=field_errors
        )

    @classmethod
    def validation_error(cls, field_errors: Dict[str, List[str]]) -> 'Result[T]':
        """Failure for input that was rejected before any side effect."""
        fields = ', '.join(sorted(field_errors))
        return cls.failure(
            f"Invalid input: {fields}",
            code='VALIDATION_ERROR',
            field_errors=field_errors
        )

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success

    @property
    def code(self) -> Optional[str]:
        """Alias for error_code."""
        return self.error_code

    def unwrap(self) -> T:
        """
        Get the data from a successful result.

        Raises:
            ValueError: If called on a failure result
        """
        if self.is_failure:
            raise ValueError(f"Cannot unwrap a failure result: {self.error}")
        return self.data

    def unwrap_or(self, default: T) -> T:
        return self.data if self.is_success else default

    def to_dict(self) -> Dict[str, Any]:
        """Error payload for JSON responses."""
        payload = {'success': self.success}
        if self.is_failure:
            payload['error'] = self.error
            payload['error_code'] = self.error_code
            if self.field_errors:
                payload['field_errors'] = self.field_errors
            if self.metadata:
                payload['details'] = self.metadata
        return payload

    def __bool__(self) -> bool:
        return self.is_success

    def __repr__(self) -> str:
        if self.is_success:
            return f"Result.success(data={self.data!r})"
        return f"Result.failure(error={self.error!r}, code={self.error_code!r})"
