"""Tests for the incident lifecycle and corrective actions."""

from datetime import timedelta

import pytest

from autocontrol.core.exceptions import InvalidStateTransitionError, NotFoundError, ValidationError
from autocontrol.models import CorrectiveActionStatus, IncidentSeverity, IncidentStatus
from autocontrol.models.base import utcnow
from autocontrol.services.incidents import IncidentService


def incident_payload(**overrides):
    payload = {
        "title": "Camara 2 fuera de rango",
        "description": "La camara marcaba 9 grados a primera hora",
        "detection_date": utcnow() - timedelta(hours=2),
        "affected_area": "Cocina",
        "severity": IncidentSeverity.HIGH,
    }
    payload.update(overrides)
    return payload


def action_payload(**overrides):
    payload = {
        "description": "Trasladar producto a camara 1",
        "implementation_date": utcnow(),
        "responsible_user": "Ana Garcia",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def service(db_session) -> IncidentService:
    return IncidentService(db_session)


# ============================================================================
# Creation
# ============================================================================

@pytest.mark.asyncio
async def test_new_incident_is_open(service, context):
    incident = await service.create(context, incident_payload(status=IncidentStatus.RESOLVED))

    assert incident.status == IncidentStatus.OPEN, "Initial status must not come from the payload"
    assert incident.corrective_actions == []
    assert incident.resolved_at is None


@pytest.mark.asyncio
async def test_detection_date_window(service, context):
    with pytest.raises(ValidationError) as future:
        await service.create(context, incident_payload(detection_date=utcnow() + timedelta(days=1)))
    with pytest.raises(ValidationError) as stale:
        await service.create(context, incident_payload(detection_date=utcnow() - timedelta(days=400)))

    assert future.value.errors == [{"field": "detectionDate", "message": "Date cannot be in the future"}]
    assert stale.value.errors[0]["field"] == "detectionDate"


@pytest.mark.asyncio
async def test_status_cannot_be_patched(service, context):
    incident = await service.create(context, incident_payload())

    updated = await service.update(context, incident.id, {"status": IncidentStatus.RESOLVED, "title": "Nuevo"})

    assert updated.title == "Nuevo"
    assert updated.status == IncidentStatus.OPEN


@pytest.mark.asyncio
async def test_filter_by_status_and_severity(service, context):
    await service.create(context, incident_payload(severity=IncidentSeverity.LOW))
    high = await service.create(context, incident_payload())
    await service.add_action(context, high.id, action_payload())

    page = await service.list(context, {"status": "En Proceso", "severity": "Alta"})
    assert [incident.id for incident in page.items] == [high.id]

    with pytest.raises(ValidationError) as exc_info:
        await service.list(context, {"status": "Cerrada"})
    assert exc_info.value.errors[0]["field"] == "status"
    assert "Abierta" in exc_info.value.errors[0]["message"]


# ============================================================================
# Corrective Actions
# ============================================================================

@pytest.mark.asyncio
async def test_first_action_moves_incident_in_progress(service, context):
    incident = await service.create(context, incident_payload())

    action = await service.add_action(context, incident.id, action_payload())

    assert action.status == CorrectiveActionStatus.PENDING
    assert action.organization_id == context.organization_id
    assert incident.status == IncidentStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_completing_action_stamps_completion(service, context):
    incident = await service.create(context, incident_payload())
    action = await service.add_action(context, incident.id, action_payload())

    await service.update_action(context, incident.id, action.id, {"status": CorrectiveActionStatus.COMPLETED})
    assert action.completed_at is not None

    await service.update_action(context, incident.id, action.id, {"status": CorrectiveActionStatus.IN_PROGRESS})
    assert action.completed_at is None


@pytest.mark.asyncio
async def test_completing_all_actions_does_not_resolve(service, context):
    incident = await service.create(context, incident_payload())
    action = await service.add_action(context, incident.id, action_payload())

    await service.update_action(context, incident.id, action.id, {"status": CorrectiveActionStatus.COMPLETED})

    assert incident.status == IncidentStatus.IN_PROGRESS, "Resolution must be explicit"


@pytest.mark.asyncio
async def test_unknown_action_not_found(service, context):
    incident = await service.create(context, incident_payload())
    other = await service.create(context, incident_payload(title="Otra"))
    action = await service.add_action(context, other.id, action_payload())

    with pytest.raises(NotFoundError):
        await service.update_action(context, incident.id, action.id, {"description": "x"})


# ============================================================================
# Resolution
# ============================================================================

@pytest.mark.asyncio
async def test_resolve_requires_an_action(service, context):
    incident = await service.create(context, incident_payload())

    with pytest.raises(InvalidStateTransitionError):
        await service.resolve(context, incident.id)

    assert incident.status == IncidentStatus.OPEN


@pytest.mark.asyncio
async def test_resolve_requires_completed_actions(service, context):
    incident = await service.create(context, incident_payload())
    done = await service.add_action(context, incident.id, action_payload(status=CorrectiveActionStatus.COMPLETED))
    await service.add_action(context, incident.id, action_payload(description="Revisar termostato"))

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await service.resolve(context, incident.id)

    assert exc_info.value.status_code == 409
    assert done.completed_at is not None


@pytest.mark.asyncio
async def test_resolve_and_freeze(service, context):
    incident = await service.create(context, incident_payload())
    action = await service.add_action(context, incident.id, action_payload(status=CorrectiveActionStatus.COMPLETED))

    resolved = await service.resolve(context, incident.id, "Termostato sustituido")

    assert resolved.status == IncidentStatus.RESOLVED
    assert resolved.resolved_by == context.user_id
    assert resolved.resolved_at is not None
    assert resolved.resolution_notes == "Termostato sustituido"

    with pytest.raises(InvalidStateTransitionError):
        await service.add_action(context, incident.id, action_payload())
    with pytest.raises(InvalidStateTransitionError):
        await service.update_action(context, incident.id, action.id, {"description": "Cambio tardio"})
    with pytest.raises(InvalidStateTransitionError):
        await service.resolve(context, incident.id)


@pytest.mark.asyncio
async def test_actions_removable_only_after_resolution(service, context):
    incident = await service.create(context, incident_payload())
    action = await service.add_action(context, incident.id, action_payload(status=CorrectiveActionStatus.COMPLETED))

    with pytest.raises(InvalidStateTransitionError):
        await service.remove_action(context, incident.id, action.id)

    await service.resolve(context, incident.id)
    await service.remove_action(context, incident.id, action.id)

    assert incident.corrective_actions == []
    assert incident.status == IncidentStatus.RESOLVED
