"""
Client-side error taxonomy.

``ApiClient`` is the only place transport failures and HTTP statuses are
classified; feature APIs re-wrap plain ``ApiError`` into their own domain
error and let every other subclass through unchanged.
"""
from typing import Any, Optional


class ApiError(Exception):
    """Any non-2xx response, carrying the status and the server's machine code."""

    default_message = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Any = None,
    ):
        self.message = message or self.default_message
        self.code = code
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}, status_code={self.status_code!r})"


class AuthError(ApiError):
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, response: Any = None):
        super().__init__(message, code, 401, response)


class NetworkError(ApiError):
    """No response was received."""

    default_message = "Network error occurred"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, "NETWORK_ERROR")


class RequestTimeoutError(NetworkError):
    default_message = "Request timeout"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.code = "TIMEOUT"


class ValidationError(ApiError):
    default_message = "Bad request"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        status_code: int = 400,
        response: Any = None,
    ):
        super().__init__(message, "VALIDATION_ERROR", status_code, response)
        self.field = field


class PermissionDeniedError(ApiError):
    default_message = "Permission denied"

    def __init__(self, message: Optional[str] = None, response: Any = None):
        super().__init__(message, "PERMISSION_DENIED", 403, response)


class NotFoundError(ApiError):
    default_message = "Resource not found"

    def __init__(self, message: Optional[str] = None, response: Any = None):
        super().__init__(message, "NOT_FOUND", 404, response)


class ServerError(ApiError):
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, status_code: int = 500, response: Any = None):
        super().__init__(message, "SERVER_ERROR", status_code, response)


class AdminApiError(ApiError):
    """Raised by the admin feature APIs."""


class WorkspaceApiError(ApiError):
    """Raised by the workspace-scoped feature APIs."""


RETRYABLE_STATUSES = frozenset([408, 500, 502, 503, 504])


def _message_from(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    message = body.get("message") or body.get("detail")
    if isinstance(message, str):
        return message
    if isinstance(message, list) and message:
        # FastAPI validation errors: [{"loc": [...], "msg": "..."}]
        first = message[0]
        if isinstance(first, dict):
            return first.get("msg")
    return None


def _field_from(body: Any) -> Optional[str]:
    if not isinstance(body, dict) or not isinstance(body.get("detail"), list):
        return None
    first = body["detail"][0] if body["detail"] else None
    if isinstance(first, dict) and first.get("loc"):
        return str(first["loc"][-1])
    return None


def create_api_error(status_code: int, body: Any = None) -> ApiError:
    """Build the typed error for a failed response."""
    message = _message_from(body)
    code = body.get("code") if isinstance(body, dict) else None

    if status_code == 401:
        return AuthError(message, code, response=body)
    if status_code in (400, 422):
        return ValidationError(message, field=_field_from(body), status_code=status_code, response=body)
    if status_code == 403:
        return PermissionDeniedError(message, response=body)
    if status_code == 404:
        return NotFoundError(message, response=body)
    if status_code >= 500:
        return ServerError(message, status_code=status_code, response=body)
    return ApiError(message or f"HTTP {status_code}", code, status_code, body)


def is_retryable(error: Exception) -> bool:
    """Transport failures, 408 and 5xx are retryable; auth and validation never are."""
    if isinstance(error, (AuthError, ValidationError)):
        return False
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, ApiError) and error.status_code is not None:
        return error.status_code in RETRYABLE_STATUSES or error.status_code >= 500
    return False
