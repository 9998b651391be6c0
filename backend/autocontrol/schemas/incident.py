"""Pydantic schemas for incidents and corrective actions."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator
from pydantic_core import PydanticCustomError

from autocontrol.models.base import as_utc, utcnow
from autocontrol.models.incident import (
    MAX_DETECTION_AGE,
    CorrectiveActionStatus,
    IncidentSeverity,
    IncidentStatus,
)
from autocontrol.schemas.common import CamelModel, check_not_in_future
from autocontrol.schemas.records import RecordResponse


def check_detection_date(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return value
    check_not_in_future(value)
    if as_utc(value) < utcnow() - MAX_DETECTION_AGE:
        raise PydanticCustomError(
            "detection_too_old", "Detection date cannot be more than one year ago"
        )
    return value


class CorrectiveActionCreate(CamelModel):
    description: str = Field(..., min_length=5, max_length=500)
    implementation_date: datetime = Field(..., description="When the action is implemented")
    responsible_user: Optional[str] = Field(None, max_length=100)
    status: CorrectiveActionStatus = Field(CorrectiveActionStatus.PENDING)


class CorrectiveActionUpdate(CamelModel):
    description: Optional[str] = Field(None, min_length=5, max_length=500)
    implementation_date: Optional[datetime] = None
    responsible_user: Optional[str] = Field(None, max_length=100)
    status: Optional[CorrectiveActionStatus] = None


class CorrectiveActionResponse(RecordResponse):
    incident_id: UUID
    description: str
    implementation_date: datetime
    responsible_user: Optional[str] = None
    status: CorrectiveActionStatus
    completed_at: Optional[datetime] = None


class IncidentCreate(CamelModel):
    """
    New incident. Status always starts as Abierta (Open).

    Detection date may not be in the future nor older than one year.
    """

    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    detection_date: datetime = Field(..., description="When the incident was detected")
    affected_area: str = Field(..., min_length=1, max_length=50)
    severity: IncidentSeverity = Field(IncidentSeverity.MEDIUM)

    @field_validator("detection_date")
    @classmethod
    def validate_detection_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return check_detection_date(v)


class IncidentUpdate(CamelModel):
    """Incident patch. Status changes go through corrective actions and resolve."""

    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    detection_date: Optional[datetime] = None
    affected_area: Optional[str] = Field(None, min_length=1, max_length=50)
    severity: Optional[IncidentSeverity] = None

    @field_validator("detection_date")
    @classmethod
    def validate_detection_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return check_detection_date(v)


class IncidentResolve(CamelModel):
    resolution_notes: Optional[str] = Field(None, max_length=1000)


class IncidentResponse(RecordResponse):
    title: str
    description: str
    detection_date: datetime
    affected_area: str
    severity: IncidentSeverity
    status: IncidentStatus
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[UUID] = None
    corrective_actions: list[CorrectiveActionResponse] = Field(default_factory=list)
