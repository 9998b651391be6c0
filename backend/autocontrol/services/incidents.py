"""Incident service: incident records and their corrective actions."""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from autocontrol.core.context import TenantContext
from autocontrol.core.exceptions import InvalidStateTransitionError, NotFoundError
from autocontrol.models.audit import AuditResource
from autocontrol.models.base import as_utc, utcnow
from autocontrol.models.incident import (
    MAX_DETECTION_AGE,
    CorrectiveAction,
    CorrectiveActionStatus,
    Incident,
    IncidentSeverity,
    IncidentStatus,
)
from autocontrol.services.records import (
    ErrorCollector,
    FilterSpec,
    RecordService,
    enum_parser,
    not_in_future,
)

logger = logging.getLogger(__name__)

CORRECTIVE_ACTION_FIELDS = frozenset({"description", "implementation_date", "responsible_user", "status"})


class IncidentService(RecordService[Incident]):
    """
    Incident lifecycle.

    State machine:
        Abierta (Open) -> En Proceso (InProgress): first corrective action added
        En Proceso -> Resuelta (Resolved): explicit resolve() only, once every
            corrective action is Completada

    Completing the last action never resolves the incident by itself.
    Status is not patchable through update().
    """

    model = Incident
    label = "Incident"
    audit_resource = AuditResource.INCIDENT
    filters = {
        "status": FilterSpec("status", enum_parser(IncidentStatus)),
        "severity": FilterSpec("severity", enum_parser(IncidentSeverity)),
        "affectedArea": FilterSpec("affected_area"),
    }
    search_fields = ("title", "description")
    date_field = "detection_date"
    sort_fields = frozenset({"created_at", "updated_at", "detection_date", "severity", "status"})
    required_fields = frozenset({"title", "description", "detection_date", "affected_area"})
    soft_delete = True
    immutable_fields = RecordService.immutable_fields | {
        "status",
        "resolved_at",
        "resolved_by",
        "resolution_notes",
    }

    async def validate(
        self,
        context: TenantContext,
        values: dict[str, Any],
        errors: ErrorCollector,
        existing: Optional[Incident] = None,
    ) -> None:
        await super().validate(context, values, errors, existing)
        not_in_future(values, "detection_date", errors)

        detection_date = values.get("detection_date")
        if isinstance(detection_date, datetime):
            if as_utc(detection_date) < utcnow() - MAX_DETECTION_AGE:
                errors.add("detection_date", "Detection date cannot be more than one year ago")

    def build(self, context: TenantContext, values: dict[str, Any]) -> Incident:
        incident = super().build(context, values)
        incident.status = IncidentStatus.OPEN
        # Initialized up front so the collection is never lazy-loaded
        incident.corrective_actions = []
        return incident

    # ------------------------------------------------------------------
    # Corrective actions
    # ------------------------------------------------------------------

    @staticmethod
    def _find_action(incident: Incident, action_id: UUID) -> CorrectiveAction:
        for action in incident.corrective_actions:
            if action.id == action_id:
                return action
        raise NotFoundError("Corrective action not found")

    @staticmethod
    def _apply_action_status(action: CorrectiveAction, status: CorrectiveActionStatus) -> None:
        action.status = status
        if status == CorrectiveActionStatus.COMPLETED:
            action.completed_at = action.completed_at or utcnow()
        else:
            action.completed_at = None

    def _touch(self, context: TenantContext, incident: Incident) -> None:
        incident.updated_at = utcnow()
        incident.updated_by = context.user_id

    async def add_action(
        self, context: TenantContext, incident_id: UUID, payload: dict[str, Any]
    ) -> CorrectiveAction:
        """
        Record a corrective action; moves an Open incident to InProgress.

        Raises:
            NotFoundError: Incident missing or owned by another organization
            InvalidStateTransitionError: Incident already resolved
        """
        incident = await self.get(context, incident_id)
        if incident.status == IncidentStatus.RESOLVED:
            raise InvalidStateTransitionError("Cannot add corrective actions to a resolved incident")

        values = {key: value for key, value in payload.items() if key in CORRECTIVE_ACTION_FIELDS}
        status = values.pop("status", None) or CorrectiveActionStatus.PENDING

        action = CorrectiveAction(
            **values,
            incident_id=incident.id,
            organization_id=context.organization_id,
            created_by=context.user_id,
            updated_by=context.user_id,
        )
        self._apply_action_status(action, status)
        incident.corrective_actions.append(action)

        if incident.status == IncidentStatus.OPEN:
            incident.status = IncidentStatus.IN_PROGRESS
        self._touch(context, incident)
        await self.session.commit()

        logger.info(
            "Corrective action added",
            extra={
                "incident_id": str(incident.id),
                "action_id": str(action.id),
                "organization_id": str(context.organization_id),
            },
        )
        return action

    async def update_action(
        self,
        context: TenantContext,
        incident_id: UUID,
        action_id: UUID,
        patch: dict[str, Any],
    ) -> CorrectiveAction:
        """
        Patch a corrective action of an unresolved incident.

        Raises:
            NotFoundError: Incident or action not found for this organization
            InvalidStateTransitionError: Incident already resolved
        """
        incident = await self.get(context, incident_id)
        action = self._find_action(incident, action_id)
        if incident.status == IncidentStatus.RESOLVED:
            raise InvalidStateTransitionError("Corrective actions of a resolved incident are frozen")

        values = {key: value for key, value in patch.items() if key in CORRECTIVE_ACTION_FIELDS}
        status = values.pop("status", None)
        for key, value in values.items():
            if value is not None or key == "responsible_user":
                setattr(action, key, value)
        if status is not None:
            self._apply_action_status(action, status)

        action.updated_at = utcnow()
        action.updated_by = context.user_id
        self._touch(context, incident)
        await self.session.commit()
        return action

    async def remove_action(self, context: TenantContext, incident_id: UUID, action_id: UUID) -> None:
        """
        Remove a corrective action.

        The action list only grows while the incident is open; removal is
        allowed once the incident is resolved.

        Raises:
            NotFoundError: Incident or action not found for this organization
            InvalidStateTransitionError: Incident not resolved yet
        """
        incident = await self.get(context, incident_id)
        action = self._find_action(incident, action_id)
        if incident.status != IncidentStatus.RESOLVED:
            raise InvalidStateTransitionError(
                "Corrective actions cannot be removed before the incident is resolved"
            )

        incident.corrective_actions.remove(action)
        self._touch(context, incident)
        await self.session.commit()

        logger.info(
            "Corrective action removed",
            extra={"incident_id": str(incident.id), "action_id": str(action_id)},
        )

    async def resolve(
        self,
        context: TenantContext,
        incident_id: UUID,
        resolution_notes: Optional[str] = None,
    ) -> Incident:
        """
        Explicitly resolve an incident.

        Raises:
            NotFoundError: Incident missing or owned by another organization
            InvalidStateTransitionError: Already resolved, no corrective
                actions, or some action not yet Completada
        """
        incident = await self.get(context, incident_id)

        if incident.status == IncidentStatus.RESOLVED:
            raise InvalidStateTransitionError("Incident is already resolved")
        if not incident.corrective_actions:
            raise InvalidStateTransitionError("An incident needs at least one corrective action to be resolved")
        pending = [a for a in incident.corrective_actions if a.status != CorrectiveActionStatus.COMPLETED]
        if pending:
            raise InvalidStateTransitionError(
                f"{len(pending)} corrective action(s) are not completed yet"
            )

        now = utcnow()
        incident.status = IncidentStatus.RESOLVED
        incident.resolved_at = now
        incident.resolved_by = context.user_id
        incident.resolution_notes = resolution_notes
        self._touch(context, incident)
        await self.session.commit()

        logger.info(
            "Incident resolved",
            extra={"incident_id": str(incident.id), "organization_id": str(context.organization_id)},
        )
        return incident
