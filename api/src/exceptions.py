"""
Domain exceptions raised by services and rendered by the API error handlers.

Each exception carries the HTTP status code and a machine-readable error code.
Handlers in ``api.src.main`` turn them into ``{"detail", "error_code", ...}``
JSON bodies so routers never build error responses by hand.
"""

from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base class for expected, client-visible failures."""

    status_code: int = 400
    error_code: str = "BAD_REQUEST"

    def __init__(self, detail: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail, "error_code": self.error_code}
        body.update(self.extra)
        return body


class BadRequestError(MarketplaceError):
    """Request is well-formed but violates a business rule."""

    status_code = 400
    error_code = "BAD_REQUEST"


class AuthenticationError(MarketplaceError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    error_code = "AUTHENTICATION_FAILED"


class PermissionDeniedError(MarketplaceError):
    """Caller is authenticated but not allowed to act on the resource."""

    status_code = 403
    error_code = "PERMISSION_DENIED"


class NotFoundError(MarketplaceError):
    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(MarketplaceError):
    """Resource state changed or already exists."""

    status_code = 409
    error_code = "CONFLICT"


class PayloadTooLargeError(MarketplaceError):
    status_code = 413
    error_code = "PAYLOAD_TOO_LARGE"


class ExternalServiceError(MarketplaceError):
    """A downstream dependency (SMTP, object storage) failed."""

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"


class ServiceUnavailableError(MarketplaceError):
    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
