"""
Admin router.

Provides REST API endpoints for:
- Audit log search (admin only)
"""

import math
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from api.src.dependencies import (
    PaginationParams,
    get_audit_repository,
    get_pagination_params,
    require_admin,
)
from api.src.models.audit import (
    AuditAction,
    AuditLogFilter,
    AuditLogListResponse,
    ResourceType,
)
from api.src.models.auth import CurrentUser
from api.src.models.base import ErrorResponse
from api.src.repositories.audit_repo import AuditRepository

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Administration"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        422: {"description": "Validation Error"},
    },
)


@router.get(
    "/audit-logs",
    response_model=AuditLogListResponse,
    summary="List Audit Logs",
    description="""
    Search the audit trail, newest first.

    **Authentication:** Required (admin role)

    **Query Parameters:**
    - user_id: Filter by acting user
    - action: Filter by audit action
    - resource_type: Filter by resource type
    - page / limit: Pagination
    """,
)
async def list_audit_logs(
    user_id: Optional[str] = Query(None),
    action: Optional[AuditAction] = Query(None),
    resource_type: Optional[ResourceType] = Query(None),
    pagination: PaginationParams = Depends(get_pagination_params),
    current_user: CurrentUser = Depends(require_admin),
    audit_repo: AuditRepository = Depends(get_audit_repository),
) -> AuditLogListResponse:
    filters = AuditLogFilter(user_id=user_id, action=action, resource_type=resource_type)
    entries, total = await audit_repo.list_audit_logs(filters, skip=pagination.skip, limit=pagination.limit)

    logger.info(
        "audit_logs_listed",
        admin_user_id=current_user.id,
        total=total,
        page=pagination.page,
    )
    return AuditLogListResponse(
        items=entries,
        total=total,
        page=pagination.page,
        limit=pagination.limit,
        pages=math.ceil(total / pagination.limit) if total else 0,
    )
