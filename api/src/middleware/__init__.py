"""FastAPI middleware components.

This package contains custom middleware for request/response processing:
audit trail writes for mutating API requests.
"""

from api.src.middleware.audit import AuditMiddleware

__all__ = [
    "AuditMiddleware",
]
