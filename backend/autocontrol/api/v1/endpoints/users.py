"""Organization member management endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from autocontrol.api.dependencies import Audit, DbSession, Dispatcher, require_permission
from autocontrol.core.config import settings
from autocontrol.core.context import TenantContext
from autocontrol.core.permissions import Permission
from autocontrol.models.audit import AuditAction, AuditResource
from autocontrol.models.user import UserRole
from autocontrol.schemas.common import ApiResponse, Pagination
from autocontrol.schemas.user import UserInvite, UserResponse, UserUpdate
from autocontrol.services.email import EmailTemplate
from autocontrol.services.users import UserService

router = APIRouter(prefix="/organization/users")

UserManager = Annotated[TenantContext, Depends(require_permission(Permission.MANAGE_USERS))]


@router.get(
    "",
    response_model=ApiResponse[list[UserResponse]],
    summary="List members",
)
async def list_members(
    context: UserManager,
    db: DbSession,
    search: Annotated[Optional[str], Query(max_length=100, description="Match on name or email")] = None,
    role: Annotated[Optional[UserRole], Query()] = None,
    is_active: Annotated[Optional[bool], Query(alias="isActive")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=settings.MAX_PAGE_SIZE)] = settings.DEFAULT_PAGE_SIZE,
) -> ApiResponse[list[UserResponse]]:
    result = await UserService(db).list_members(
        context, search=search, role=role, is_active=is_active, page=page, limit=limit
    )
    return ApiResponse(
        data=[UserResponse.model_validate(user) for user in result.items],
        pagination=Pagination(**result.pagination()),
    )


@router.get("/{user_id}", response_model=ApiResponse[UserResponse], summary="Get member")
async def get_member(user_id: UUID, context: UserManager, db: DbSession) -> ApiResponse[UserResponse]:
    user = await UserService(db).get_member(context, user_id)
    return ApiResponse(data=UserResponse.model_validate(user))


@router.post(
    "",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Invite member",
    description="Create an inactive member and email an invitation link. Respects the plan's user limit.",
)
async def invite_member(
    body: UserInvite,
    context: UserManager,
    db: DbSession,
    dispatcher: Dispatcher,
    audit: Audit,
) -> ApiResponse[UserResponse]:
    invitation = await UserService(db).invite(context, body.email, body.name, body.role)
    await audit.record_for(
        context,
        AuditAction.INVITE_USER,
        AuditResource.USER,
        invitation.user.id,
        {"role": invitation.user.role.value},
    )
    await dispatcher.dispatch(
        EmailTemplate.INVITATION,
        invitation.user.email,
        invitation.token,
        invitation.user.name,
        invitation.organization.name,
    )
    return ApiResponse(data=UserResponse.model_validate(invitation.user), message="Invitation sent")


@router.put("/{user_id}", response_model=ApiResponse[UserResponse], summary="Update member")
async def update_member(
    user_id: UUID,
    body: UserUpdate,
    context: UserManager,
    db: DbSession,
    audit: Audit,
) -> ApiResponse[UserResponse]:
    patch = body.model_dump(exclude_unset=True)
    user = await UserService(db).update_member(context, user_id, patch)
    action = AuditAction.CHANGE_ROLE if "role" in patch else AuditAction.UPDATE
    await audit.record_for(context, action, AuditResource.USER, user.id, {"fields": sorted(patch)})
    return ApiResponse(data=UserResponse.model_validate(user), message="User updated")


@router.delete("/{user_id}", response_model=ApiResponse[UserResponse], summary="Deactivate member")
async def deactivate_member(
    user_id: UUID, context: UserManager, db: DbSession, audit: Audit
) -> ApiResponse[UserResponse]:
    """Members are deactivated, never removed; their records keep attribution."""
    user = await UserService(db).deactivate_member(context, user_id)
    await audit.record_for(context, AuditAction.REMOVE_USER, AuditResource.USER, user.id)
    return ApiResponse(data=UserResponse.model_validate(user), message="User deactivated")


@router.post(
    "/{user_id}/resend-invitation",
    response_model=ApiResponse[UserResponse],
    summary="Resend invitation",
    description="Replace a pending member's invitation token and email a new link.",
)
async def resend_invitation(
    user_id: UUID,
    context: UserManager,
    db: DbSession,
    dispatcher: Dispatcher,
    audit: Audit,
) -> ApiResponse[UserResponse]:
    invitation = await UserService(db).resend_invitation(context, user_id)
    await audit.record_for(
        context,
        AuditAction.INVITE_USER,
        AuditResource.USER,
        invitation.user.id,
        {"resent": True},
    )
    await dispatcher.dispatch(
        EmailTemplate.INVITATION,
        invitation.user.email,
        invitation.token,
        invitation.user.name,
        invitation.organization.name,
    )
    return ApiResponse(data=UserResponse.model_validate(invitation.user), message="Invitation sent")
