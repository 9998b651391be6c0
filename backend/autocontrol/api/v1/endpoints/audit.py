"""Audit trail endpoints (admins only)."""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from autocontrol.api.dependencies import DbSession, require_role
from autocontrol.core.config import settings
from autocontrol.core.context import TenantContext
from autocontrol.models.audit import AuditAction, AuditResource
from autocontrol.models.user import UserRole
from autocontrol.schemas.audit import AuditLogResponse, AuditStats
from autocontrol.schemas.common import ApiResponse, Pagination
from autocontrol.services.audit import AuditTrail

router = APIRouter(prefix="/audit")

Admin = Annotated[TenantContext, Depends(require_role(UserRole.ADMIN))]

# Forwarded to the service, which reports every malformed value at once
LOG_FILTERS = ("userId", "action", "resource", "success", "dateFrom", "dateTo")


@router.get(
    "/logs",
    response_model=ApiResponse[list[AuditLogResponse]],
    summary="List audit logs",
    description="Newest first. Filters: userId, action, resource, success, dateFrom, dateTo.",
)
async def list_audit_logs(
    request: Request,
    context: Admin,
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=settings.MAX_PAGE_SIZE)] = settings.DEFAULT_PAGE_SIZE,
) -> ApiResponse[list[AuditLogResponse]]:
    filters = {key: request.query_params.get(key) for key in LOG_FILTERS}
    result = await AuditTrail(db).list(context, filters, page=page, limit=limit)
    return ApiResponse(
        data=[AuditLogResponse.model_validate(entry) for entry in result.items],
        pagination=Pagination(**result.pagination()),
    )


@router.get(
    "/stats",
    response_model=ApiResponse[AuditStats],
    summary="Audit statistics",
)
async def get_audit_stats(
    context: Admin,
    db: DbSession,
    date_from: Annotated[Optional[datetime], Query(alias="dateFrom")] = None,
    date_to: Annotated[Optional[datetime], Query(alias="dateTo")] = None,
) -> ApiResponse[AuditStats]:
    stats = await AuditTrail(db).stats(context, date_from, date_to)
    return ApiResponse(data=AuditStats.model_validate(stats))


@router.get("/actions", response_model=ApiResponse[list[str]], summary="Audited actions")
async def list_audit_actions(context: Admin) -> ApiResponse[list[str]]:
    return ApiResponse(data=[action.value for action in AuditAction])


@router.get("/resources", response_model=ApiResponse[list[str]], summary="Audited resources")
async def list_audit_resources(context: Admin) -> ApiResponse[list[str]]:
    return ApiResponse(data=[resource.value for resource in AuditResource])
