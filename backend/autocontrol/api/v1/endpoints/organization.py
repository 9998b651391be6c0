"""Organization API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from autocontrol.api.dependencies import (
    Audit,
    CurrentContext,
    DbSession,
    require_permission,
    require_role,
)
from autocontrol.core.context import TenantContext
from autocontrol.core.permissions import Permission
from autocontrol.models.audit import AuditAction, AuditResource
from autocontrol.models.user import UserRole
from autocontrol.schemas.common import ApiResponse
from autocontrol.schemas.organization import (
    OrganizationResponse,
    OrganizationStats,
    OrganizationUpdate,
)
from autocontrol.services.organizations import OrganizationRegistry

router = APIRouter(prefix="/organization")


@router.get(
    "",
    response_model=ApiResponse[OrganizationResponse],
    summary="Get organization",
)
async def get_organization(
    context: CurrentContext, db: DbSession
) -> ApiResponse[OrganizationResponse]:
    """Caller's organization, including settings and plan limits."""
    organization = await OrganizationRegistry(db).get(context.organization_id)
    return ApiResponse(data=OrganizationResponse.from_model(organization))


@router.put(
    "",
    response_model=ApiResponse[OrganizationResponse],
    summary="Update organization",
    description="Update the name, establishment details and branding. Requires the manage_org permission.",
)
async def update_organization(
    body: OrganizationUpdate,
    context: Annotated[TenantContext, Depends(require_permission(Permission.MANAGE_ORG))],
    db: DbSession,
    audit: Audit,
) -> ApiResponse[OrganizationResponse]:
    patch = body.model_dump(exclude_unset=True)
    organization = await OrganizationRegistry(db).update(context, patch)
    await audit.record_for(
        context,
        AuditAction.UPDATE_ORGANIZATION,
        AuditResource.ORGANIZATION,
        organization.id,
        {"fields": sorted(patch)},
    )
    return ApiResponse(
        data=OrganizationResponse.from_model(organization),
        message="Organization updated",
    )


@router.get(
    "/stats",
    response_model=ApiResponse[OrganizationStats],
    summary="Organization usage statistics",
)
async def get_organization_stats(
    context: Annotated[TenantContext, Depends(require_role(UserRole.ADMIN))],
    db: DbSession,
) -> ApiResponse[OrganizationStats]:
    stats = await OrganizationRegistry(db).stats(context)
    return ApiResponse(data=OrganizationStats.model_validate(stats))
