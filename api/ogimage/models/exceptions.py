"""Exception types for the OG image API.

Each exception maps to exactly one HTTP status. Handlers in ``main.py`` turn
them into the ``{"error": ..., "request_id": ...}`` body every endpoint
returns on failure.
"""

from typing import Any, Callable, Dict, Optional, Type

from fastapi import HTTPException


class OGBaseException(Exception):
    """Base exception for all OG image API errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        return self.message

    @property
    def headers(self) -> Dict[str, str]:
        return {}


class ValidationError(OGBaseException):
    """Raised when request validation fails."""

    status_code = 400

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        details: Dict[str, Any] = {"field": field}
        if value is not None:
            details["value"] = value
        super().__init__(message, details)


class UnsupportedMediaTypeError(ValidationError):
    """Raised when a JSON endpoint receives a non-JSON body."""

    status_code = 415

    def __init__(self, expected: str = "application/json"):
        super().__init__("content-type", f"Content-Type must be {expected}")


class UnauthorizedError(OGBaseException):
    """Raised when no valid credential accompanies a request that needs one."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ForbiddenError(OGBaseException):
    """Raised when a credential acts on a resource owned by another account."""

    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFoundError(OGBaseException):
    """Raised when a referenced resource does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        self.resource = resource
        self.identifier = identifier
        details = {"resource": resource}
        if identifier:
            details["id"] = identifier
        super().__init__(f"{resource} not found", details)


class MethodNotAllowedError(OGBaseException):
    """Raised for unsupported HTTP methods."""

    status_code = 405

    def __init__(self, allowed: str = "GET"):
        self.allowed = allowed
        super().__init__("Method not allowed", {"allowed": allowed})

    @property
    def headers(self) -> Dict[str, str]:
        return {"Allow": self.allowed}


class QuotaExceededError(OGBaseException):
    """Raised when a free-tier credential exceeds its monthly quota."""

    status_code = 429

    def __init__(self, plan: str, limit: int, usage: int, retry_after: int):
        self.plan = plan
        self.limit = limit
        self.usage = usage
        self.retry_after = retry_after
        super().__init__(
            "Monthly quota exceeded",
            {"plan": plan, "limit": limit, "usage": usage, "retry_after": retry_after},
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {"Retry-After": str(self.retry_after)}


class RenderError(OGBaseException):
    """Raised when image generation fails for reasons other than the raster engine."""

    status_code = 500

    @property
    def public_message(self) -> str:
        return "Failed to generate image"


class StorageError(OGBaseException):
    """Raised when a required storage read or write fails."""

    status_code = 500

    def __init__(self, operation: str, key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.key = key
        storage_details = details or {}
        if key:
            storage_details["key"] = key
        super().__init__(f"Storage {operation} failed", storage_details)

    @property
    def public_message(self) -> str:
        return "Internal server error"


class RasterUnavailableError(Exception):
    """The raster engine cannot produce PNG output. Never surfaced to callers."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def to_http_exception(exc: OGBaseException) -> HTTPException:
    """Convert a custom exception to an HTTPException carrying the public body."""
    detail: Dict[str, Any] = {"error": exc.public_message}
    return HTTPException(status_code=exc.status_code, detail=detail, headers=exc.headers or None)


def quota_to_http_exception(exc: QuotaExceededError) -> HTTPException:
    detail = {
        "error": exc.public_message,
        "plan": exc.plan,
        "limit": exc.limit,
        "usage": exc.usage,
        "retry_after": exc.retry_after,
    }
    return HTTPException(status_code=exc.status_code, detail=detail, headers=exc.headers)


EXCEPTION_HANDLERS: Dict[Type[OGBaseException], Callable[[Any], HTTPException]] = {
    QuotaExceededError: quota_to_http_exception,
}
