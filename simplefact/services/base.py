"""Shared plumbing for resource services."""

from typing import TYPE_CHECKING, Any, Awaitable, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from simplefact.client.errors import build_error, code_for_status, normalize_error
from simplefact.exceptions import ErrorCode, SimpleFactError
from simplefact.models import ApiResponse

if TYPE_CHECKING:
    from simplefact.client.client import SimpleFactClient

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

Payload = Union[BaseModel, Mapping[str, Any]]

# Codes a 404 may carry before a service has had a chance to refine it
GENERIC_NOT_FOUND_CODES = frozenset({code_for_status(404), ErrorCode.NOT_FOUND_ERROR})


class BaseService:
    """Base class for resource services.

    Services receive the client by injection and send every request through
    ``SimpleFactClient.execute``. Failures are refined by ``_handle_error``
    so callers can branch on resource-specific codes.

    Subclasses set:
        not_found_code: Code used for a 404 without a more specific body code
        conflict_codes: Body codes honoured on a 409 response
        status_codes: Extra status -> code overrides for this resource
    """

    not_found_code: ErrorCode = ErrorCode.NOT_FOUND_ERROR
    conflict_codes: frozenset = frozenset()
    status_codes: Mapping[int, ErrorCode] = {}

    def __init__(self, client: "SimpleFactClient"):
        self._client = client

    @property
    def client(self) -> "SimpleFactClient":
        return self._client

    async def _execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        error_message: str,
        **kwargs: Any,
    ) -> ApiResponse:
        """Call ``client.execute`` and refine any failure."""
        return await self._guard(
            self._client.execute(method, path, body, context=error_message, **kwargs),
            error_message,
        )

    async def _guard(self, call: Awaitable[T], error_message: str) -> T:
        """Await ``call``, re-raising failures through ``_handle_error``."""
        try:
            return await call
        except SimpleFactError as e:
            handled = self._handle_error(e, error_message)
            if handled is e:
                raise
            raise handled from e

    def _handle_error(self, error: Any, default_message: str) -> SimpleFactError:
        """Refine a failure with this resource's error codes.

        The status code and details of the original error are preserved.

        Args:
            error: The failure, normalized or raw
            default_message: Message used when a raw error has none

        Returns:
            The refined error, or the input itself when nothing applies
        """
        if not isinstance(error, SimpleFactError):
            error = normalize_error(error, default_message)

        status = error.status_code
        if status is None:
            return error

        if status in self.status_codes:
            return _with_code(error, self.status_codes[status])

        if status == 404 and error.code in GENERIC_NOT_FOUND_CODES:
            return _with_code(error, self.not_found_code)

        if status == 409:
            body_code = _details_code(error.details)
            if body_code in self.conflict_codes and body_code != error.code:
                return _with_code(error, body_code)

        return error

    @staticmethod
    def _dump(data: Payload) -> dict[str, Any]:
        """Serialize a request payload, dropping unset values."""
        if isinstance(data, BaseModel):
            return data.model_dump(exclude_none=True)
        return {k: v for k, v in dict(data).items() if v is not None}

    @staticmethod
    def _coerce(model: Type[M], data: Payload) -> M:
        """Validate caller input into ``model``.

        Raises:
            SimpleFactError: VALIDATION_ERROR when required fields are missing
                or have the wrong type
        """
        if isinstance(data, model):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump()
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise build_error(
                ErrorCode.VALIDATION_ERROR,
                f"Invalid {model.__name__}: {e.error_count()} validation error(s)",
                details=e.errors(include_url=False),
                cause=e,
            ) from e

    def _one(self, response: ApiResponse, model: Type[M], missing_message: str) -> M:
        """Parse a single-resource envelope, treating no data as not found."""
        if response.data is None:
            raise build_error(self.not_found_code, missing_message, status_code=404)
        return self._parse(model, response.data)

    def _many(self, response: ApiResponse, model: Type[M]) -> list[M]:
        """Parse a list envelope; missing data is an empty list."""
        return [self._parse(model, item) for item in response.data or []]

    @staticmethod
    def _parse(model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise build_error(
                ErrorCode.API_ERROR,
                f"Unexpected {model.__name__} payload from API",
                details=data,
                cause=e,
            ) from e


def _with_code(error: SimpleFactError, code: ErrorCode) -> SimpleFactError:
    return SimpleFactError(
        error.message,
        code=code,
        status_code=error.status_code,
        details=error.details,
        cause=error.cause,
    )


def _details_code(details: Any) -> Optional[ErrorCode]:
    """Error code carried in a response body, if any."""
    if not isinstance(details, dict):
        return None
    error = details.get("error")
    if isinstance(error, dict):
        return ErrorCode.from_value(error.get("code"))
    return ErrorCode.from_value(details.get("code"))
