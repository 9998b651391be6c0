"""Sanitary record API endpoints (one router per record kind)."""

from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel

from autocontrol.api.dependencies import Audit, DbSession, require_permission
from autocontrol.core.config import settings
from autocontrol.core.context import TenantContext
from autocontrol.core.permissions import Permission
from autocontrol.models.audit import AuditAction, AuditResource
from autocontrol.schemas.common import ApiResponse, Pagination
from autocontrol.schemas.incident import (
    CorrectiveActionCreate,
    CorrectiveActionResponse,
    CorrectiveActionUpdate,
    IncidentCreate,
    IncidentResolve,
    IncidentResponse,
    IncidentUpdate,
)
from autocontrol.schemas.records import (
    DeliveryRecordCreate,
    DeliveryRecordResponse,
    DeliveryRecordUpdate,
    StorageRecordCreate,
    StorageRecordResponse,
    StorageRecordUpdate,
    StorageUnitCreate,
    StorageUnitResponse,
    StorageUnitUpdate,
    TechnicalSheetCreate,
    TechnicalSheetResponse,
    TechnicalSheetUpdate,
)
from autocontrol.services.incidents import IncidentService
from autocontrol.services.records import (
    DeliveryRecordService,
    RecordService,
    StorageRecordService,
    StorageUnitService,
    TechnicalSheetService,
)

# Query parameters consumed by the endpoint itself rather than passed as filters
RESERVED_PARAMS = frozenset({"page", "limit", "sort", "confirm"})

Reader = Annotated[TenantContext, Depends(require_permission(Permission.READ))]
Writer = Annotated[TenantContext, Depends(require_permission(Permission.WRITE))]
Deleter = Annotated[TenantContext, Depends(require_permission(Permission.DELETE))]


def build_record_router(
    service_cls: type[RecordService[Any]],
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    response_schema: type[BaseModel],
) -> APIRouter:
    """
    CRUD router for one record kind.

    List filters are taken from the remaining query parameters and parsed
    by the service, which reports every malformed filter at once.
    """
    router = APIRouter()
    label = service_cls.label
    resource = service_cls.audit_resource

    @router.get(
        "",
        response_model=ApiResponse[list[response_schema]],  # type: ignore[valid-type]
        summary=f"List {label.lower()}s",
    )
    async def list_records(
        request: Request,
        context: Reader,
        db: DbSession,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=settings.MAX_PAGE_SIZE)] = settings.DEFAULT_PAGE_SIZE,
        sort: Annotated[Optional[str], Query(description="Field to sort by, '-' prefix for descending")] = None,
    ) -> ApiResponse:
        filters = {
            key: value for key, value in request.query_params.items() if key not in RESERVED_PARAMS
        }
        result = await service_cls(db).list(context, filters, page=page, limit=limit, sort=sort)
        return ApiResponse(
            data=[response_schema.model_validate(item) for item in result.items],
            pagination=Pagination(**result.pagination()),
        )

    @router.get(
        "/{record_id}",
        response_model=ApiResponse[response_schema],  # type: ignore[valid-type]
        summary=f"Get {label.lower()}",
    )
    async def get_record(record_id: UUID, context: Reader, db: DbSession) -> ApiResponse:
        record = await service_cls(db).get(context, record_id)
        return ApiResponse(data=response_schema.model_validate(record))

    @router.post(
        "",
        response_model=ApiResponse[response_schema],  # type: ignore[valid-type]
        status_code=status.HTTP_201_CREATED,
        summary=f"Create {label.lower()}",
    )
    async def create_record(
        body: create_schema,  # type: ignore[valid-type]
        context: Writer,
        db: DbSession,
        audit: Audit,
    ) -> ApiResponse:
        record = await service_cls(db).create(context, body.model_dump())
        await audit.record_for(context, AuditAction.CREATE, resource, record.id)
        return ApiResponse(data=response_schema.model_validate(record), message=f"{label} created")

    @router.put(
        "/{record_id}",
        response_model=ApiResponse[response_schema],  # type: ignore[valid-type]
        summary=f"Update {label.lower()}",
    )
    async def update_record(
        record_id: UUID,
        body: update_schema,  # type: ignore[valid-type]
        context: Writer,
        db: DbSession,
        audit: Audit,
    ) -> ApiResponse:
        patch = body.model_dump(exclude_unset=True)
        record = await service_cls(db).update(context, record_id, patch)
        await audit.record_for(
            context, AuditAction.UPDATE, resource, record.id, {"fields": sorted(patch)}
        )
        return ApiResponse(data=response_schema.model_validate(record), message=f"{label} updated")

    @router.delete(
        "/{record_id}",
        response_model=ApiResponse[None],
        summary=f"Delete {label.lower()}",
    )
    async def delete_record(
        record_id: UUID,
        context: Deleter,
        db: DbSession,
        audit: Audit,
        confirm: Annotated[bool, Query(description="Required for audit records")] = False,
    ) -> ApiResponse:
        await service_cls(db).delete(context, record_id, confirm=confirm)
        await audit.record_for(context, AuditAction.DELETE, resource, record_id)
        return ApiResponse(message=f"{label} deleted")

    return router


delivery_router = build_record_router(
    DeliveryRecordService, DeliveryRecordCreate, DeliveryRecordUpdate, DeliveryRecordResponse
)
storage_unit_router = build_record_router(
    StorageUnitService, StorageUnitCreate, StorageUnitUpdate, StorageUnitResponse
)
storage_router = build_record_router(
    StorageRecordService, StorageRecordCreate, StorageRecordUpdate, StorageRecordResponse
)
technical_sheet_router = build_record_router(
    TechnicalSheetService, TechnicalSheetCreate, TechnicalSheetUpdate, TechnicalSheetResponse
)
incident_router = build_record_router(IncidentService, IncidentCreate, IncidentUpdate, IncidentResponse)


# ============================================================================
# Incident workflow
# ============================================================================


@incident_router.post(
    "/{incident_id}/corrective-actions",
    response_model=ApiResponse[CorrectiveActionResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add corrective action",
    description="Record a corrective action. An open incident moves to in progress.",
)
async def add_corrective_action(
    incident_id: UUID,
    body: CorrectiveActionCreate,
    context: Writer,
    db: DbSession,
    audit: Audit,
) -> ApiResponse[CorrectiveActionResponse]:
    action = await IncidentService(db).add_action(context, incident_id, body.model_dump())
    await audit.record_for(
        context,
        AuditAction.CREATE,
        AuditResource.CORRECTIVE_ACTION,
        action.id,
        {"incidentId": str(incident_id)},
    )
    return ApiResponse(
        data=CorrectiveActionResponse.model_validate(action),
        message="Corrective action added",
    )


@incident_router.put(
    "/{incident_id}/corrective-actions/{action_id}",
    response_model=ApiResponse[CorrectiveActionResponse],
    summary="Update corrective action",
)
async def update_corrective_action(
    incident_id: UUID,
    action_id: UUID,
    body: CorrectiveActionUpdate,
    context: Writer,
    db: DbSession,
    audit: Audit,
) -> ApiResponse[CorrectiveActionResponse]:
    patch = body.model_dump(exclude_unset=True)
    action = await IncidentService(db).update_action(context, incident_id, action_id, patch)
    await audit.record_for(
        context,
        AuditAction.UPDATE,
        AuditResource.CORRECTIVE_ACTION,
        action.id,
        {"incidentId": str(incident_id), "fields": sorted(patch)},
    )
    return ApiResponse(
        data=CorrectiveActionResponse.model_validate(action),
        message="Corrective action updated",
    )


@incident_router.delete(
    "/{incident_id}/corrective-actions/{action_id}",
    response_model=ApiResponse[None],
    summary="Remove corrective action",
)
async def remove_corrective_action(
    incident_id: UUID,
    action_id: UUID,
    context: Deleter,
    db: DbSession,
    audit: Audit,
) -> ApiResponse[None]:
    await IncidentService(db).remove_action(context, incident_id, action_id)
    await audit.record_for(
        context,
        AuditAction.DELETE,
        AuditResource.CORRECTIVE_ACTION,
        action_id,
        {"incidentId": str(incident_id)},
    )
    return ApiResponse(message="Corrective action removed")


@incident_router.post(
    "/{incident_id}/resolve",
    response_model=ApiResponse[IncidentResponse],
    summary="Resolve incident",
    description="Resolve an incident whose corrective actions are all completed.",
)
async def resolve_incident(
    incident_id: UUID,
    context: Writer,
    db: DbSession,
    audit: Audit,
    body: Optional[IncidentResolve] = None,
) -> ApiResponse[IncidentResponse]:
    incident = await IncidentService(db).resolve(
        context, incident_id, body.resolution_notes if body else None
    )
    await audit.record_for(
        context, AuditAction.UPDATE, AuditResource.INCIDENT, incident.id, {"status": incident.status.value}
    )
    return ApiResponse(data=IncidentResponse.model_validate(incident), message="Incident resolved")
