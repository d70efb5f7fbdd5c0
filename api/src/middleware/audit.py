"""
Audit logging middleware for FastAPI.

Provides:
- Automatic audit records for mutating API requests
- User action tracking (user set on ``request.state`` by the auth dependency)
- Asynchronous audit log writing
"""

import asyncio
import time
from typing import Optional, Set

import structlog
from fastapi import Request, Response
from pymongo.errors import PyMongoError
from starlette.middleware.base import BaseHTTPMiddleware

from api.src.config import get_settings
from api.src.dependencies import (
    get_client_ip,
    get_correlation_id,
    get_database,
    get_user_agent,
    is_database_ready,
)
from api.src.models.audit import AuditLogCreate, resolve_audit_action, status_from_code
from api.src.repositories.audit_repo import AuditRepository

logger = structlog.get_logger(__name__)


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log mutating API requests to the audit trail.

    Captures:
    - User ID, email and role when authenticated
    - Action and resource type derived from method and path
    - Status code and request duration
    - Client IP address, user agent and correlation ID
    """

    # HTTP methods to audit
    AUDIT_METHODS: Set[str] = {
        "POST",
        "PUT",
        "PATCH",
        "DELETE",
    }

    def __init__(self, app, audit_repo: Optional[AuditRepository] = None):
        """
        Initialize audit middleware.

        Args:
            app: ASGI application
            audit_repo: Audit repository; resolved from the live database when omitted
        """
        super().__init__(app)
        self.settings = get_settings()
        self._audit_repo = audit_repo
        self._pending: Set[asyncio.Task] = set()

    def _repo(self) -> Optional[AuditRepository]:
        if self._audit_repo is not None:
            return self._audit_repo
        if not is_database_ready():
            return None
        return AuditRepository(get_database())

    def _should_audit(self, request: Request) -> bool:
        if not self.settings.audit_enabled:
            return False
        if request.method not in self.AUDIT_METHODS:
            return False
        return request.url.path.startswith(self.settings.api_prefix + "/")

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self._should_audit(request):
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        entry = self.build_entry(request, response.status_code, duration_ms)
        repo = self._repo()
        if entry is not None and repo is not None:
            task = asyncio.create_task(self._write(repo, entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return response

    def build_entry(self, request: Request, status_code: int, duration_ms: int) -> Optional[AuditLogCreate]:
        """Build the audit record for a finished request, or None to skip it."""
        user = getattr(request.state, "user", None)
        if user is None and not self.settings.audit_log_anonymous:
            return None

        path = request.url.path
        relative = path[len(self.settings.api_prefix):] or "/"
        action, resource_type = resolve_audit_action(request.method, relative, status_code)

        return AuditLogCreate(
            user_id=user.id if user else None,
            user_email=user.email if user else None,
            user_role=user.role.value if user else None,
            action=action,
            resource_type=resource_type,
            resource_path=path[:500],
            method=request.method,
            ip_address=get_client_ip(request)[:45],
            user_agent=(get_user_agent(request) or "")[:500] or None,
            status_code=status_code,
            status=status_from_code(status_code),
            duration_ms=duration_ms,
            correlation_id=get_correlation_id(request),
        )

    async def _write(self, repo: AuditRepository, entry: AuditLogCreate) -> None:
        try:
            await repo.create_audit_log(entry)
        except PyMongoError as e:
            logger.warning("audit_log_write_failed", action=entry.action.value, error=str(e))
