"""Exception types and error codes for the SimpleFact SDK."""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable error taxonomy used for programmatic branching."""

    # Authentication
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_ITEM = "INVALID_ITEM"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_CLIENT_ID = "INVALID_CLIENT_ID"

    # Resources
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    BUDGET_NOT_FOUND = "BUDGET_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"

    # Business rules
    BUDGET_ALREADY_INVOICED = "BUDGET_ALREADY_INVOICED"
    PAYMENT_EXCEEDS_REMAINING = "PAYMENT_EXCEEDS_REMAINING"
    NO_ITEMS = "NO_ITEMS"

    # Rate limiting
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"

    # General
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    @classmethod
    def from_value(cls, value: Any) -> Optional["ErrorCode"]:
        """Look up a code by its string value, returning None if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class SimpleFactError(Exception):
    """The single error type raised by the SDK.

    Every failure path (transport, HTTP status, malformed response, local
    guard) surfaces as exactly one instance of this class.

    Attributes:
        message: Human-readable description including the operation context
        code: Error code from ErrorCode
        status_code: HTTP status, if a response was received
        details: Backend-supplied diagnostic payload, unmodified
        cause: The raw exception this error was built from
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SERVER_ERROR,
        status_code: Optional[int] = None,
        details: Any = None,
        cause: Any = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.cause = cause
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"SimpleFactError(code={self.code.value!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "message": self.message,
            "code": self.code.value,
            "status_code": self.status_code,
            "details": self.details,
        }
