"""
Base Exception Class

This module contains the base exception class that all other exceptions
inherit from. Specialized exceptions live in their themed modules.
"""

from typing import Any


class BusLaneError(Exception):
    """
    Base exception for all BusLane core errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling at the host boundary
    - Operation ID correlation
    - Structured error logging

    Attributes:
        message: Error message
        operation_id: Operation ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise EntityNotFoundError(
            "Entity 'orders' not found",
            details={"entity": "orders", "subscription": None}
        )
    """

    def __init__(
        self, message: str, operation_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.operation_id = operation_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/status display.

        Returns:
            Dict with error_type, message, operation_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "operation_id": self.operation_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "BusLaneError":
        """Attach a hint for resolving the error. Returns self for chaining."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "BusLaneError":
        """Merge extra key/value context into details. Returns self for chaining."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        op_str = f", operation_id='{self.operation_id}'" if self.operation_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{op_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        operation_id: str | None = None,
        **details
    ) -> "BusLaneError":
        """
        Create an error of this class from another exception.

        Useful for wrapping SDK exceptions with additional context.

        Example:
            >>> try:
            ...     await receiver.peek_messages(10)
            ... except ServiceBusAuthorizationError as e:
            ...     raise BrokerUnauthorizedError.from_exception(e, entity="orders")
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, operation_id=operation_id, details=error_details)


class ConfigurationError(BusLaneError):
    """Raised when configuration is invalid or missing."""
    pass


class InvalidOperationError(BusLaneError):
    """Raised when an operation's preconditions are not met."""
    pass
