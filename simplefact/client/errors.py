"""Error normalization.

Maps any failure (transport error, HTTP status, malformed response, local
guard) into exactly one ``SimpleFactError``. ``normalize_error`` is total:
it never raises and always returns an error instance.
"""

import asyncio
import json
from typing import Any, Optional

import httpx

from simplefact.exceptions import ErrorCode, SimpleFactError

STATUS_CODE_MAP = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.CLIENT_NOT_FOUND,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
}


def build_error(
    code: ErrorCode,
    message: str,
    status_code: Optional[int] = None,
    details: Any = None,
    cause: Any = None,
) -> SimpleFactError:
    """Create an error for a locally detected failure."""
    return SimpleFactError(
        message,
        code=code,
        status_code=status_code,
        details=details,
        cause=cause,
    )


def code_for_status(status_code: int) -> ErrorCode:
    """Map an HTTP status to the generic error code for it.

    404 maps to CLIENT_NOT_FOUND as a default bucket; resource services
    replace it with their own *_NOT_FOUND code.
    """
    if status_code in STATUS_CODE_MAP:
        return STATUS_CODE_MAP[status_code]
    return ErrorCode.SERVER_ERROR


def parse_response_body(response: httpx.Response) -> Any:
    """Best-effort parse of a response body.

    Returns the decoded JSON, the raw text when the body is not JSON, or
    None for an empty body.
    """
    try:
        content = response.content
    except httpx.ResponseNotRead:
        return None
    if not content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def _body_overrides(body: Any) -> tuple[Optional[ErrorCode], Optional[str]]:
    """Extract code/message overrides from an error response body."""
    if not isinstance(body, dict):
        return None, None

    error = body.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        return (
            ErrorCode.from_value(error.get("code")),
            message if isinstance(message, str) and message else None,
        )
    if isinstance(error, str) and error:
        return ErrorCode.from_value(body.get("code")), error

    message = body.get("message")
    return None, message if isinstance(message, str) and message else None


def is_network_error(error: BaseException) -> bool:
    """True when the failure happened before any response was received."""
    if isinstance(error, SimpleFactError):
        return error.code == ErrorCode.NETWORK_ERROR
    return isinstance(error, (httpx.TransportError, asyncio.TimeoutError))


def status_of(error: BaseException) -> Optional[int]:
    """HTTP status carried by an error, if any."""
    if isinstance(error, SimpleFactError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def normalize_error(error: Any, context: Optional[str] = None) -> SimpleFactError:
    """Convert any failure into a SimpleFactError.

    Rules, first match wins:
        1. Already a SimpleFactError: returned unchanged.
        2. No response received: NETWORK_ERROR without status.
        3. Response received: status mapped through code_for_status, with
           structured ``error`` body fields taking precedence.
        4. Anything else: SERVER_ERROR.

    Args:
        error: The raw failure
        context: Description of the attempted operation, used as the
            message when the response body does not carry one

    Returns:
        The normalized error
    """
    if isinstance(error, SimpleFactError):
        return error

    try:
        raw_message = str(error) or type(error).__name__
    except Exception:
        raw_message = "Unknown error occurred"
    message = context or raw_message

    if is_network_error(error):
        if context:
            message = f"{context}: {raw_message}"
        return build_error(ErrorCode.NETWORK_ERROR, message, cause=error)

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        body = parse_response_body(response)
        code = code_for_status(response.status_code)
        body_code, body_message = _body_overrides(body)
        return build_error(
            body_code or code,
            body_message or message,
            status_code=response.status_code,
            details=body,
            cause=error,
        )

    return build_error(ErrorCode.SERVER_ERROR, message, cause=error)
