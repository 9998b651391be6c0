"""Incident models - Non-conformities and their corrective actions."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autocontrol.models.base import BaseModel, SoftDeleteMixin, UTCDateTime, enum_type

# Incidents detected longer ago than this are not accepted
MAX_DETECTION_AGE = timedelta(days=365)


class IncidentSeverity(str, Enum):
    """Incident severity levels."""

    LOW = "Baja"
    MEDIUM = "Media"
    HIGH = "Alta"
    CRITICAL = "Crítica"


class IncidentStatus(str, Enum):
    """
    Incident lifecycle states.

    Open -> InProgress when the first corrective action is added.
    InProgress -> Resolved only through an explicit resolve action.
    """

    OPEN = "Abierta"
    IN_PROGRESS = "En Proceso"
    RESOLVED = "Resuelta"


class CorrectiveActionStatus(str, Enum):
    """Corrective action progress."""

    PENDING = "Pendiente"
    IN_PROGRESS = "En Progreso"
    COMPLETED = "Completada"


class Incident(BaseModel, SoftDeleteMixin):
    """
    Incident (non-conformity) detected in the establishment.

    Retained after deletion for audit.
    """

    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_org_created", "organization_id", "created_at"),
        Index("ix_incidents_org_status", "organization_id", "status"),
        Index("ix_incidents_org_severity", "organization_id", "severity"),
        Index("ix_incidents_org_detection", "organization_id", "detection_date"),
    )

    title: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    detection_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="When the incident was detected",
    )

    affected_area: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Area of the establishment affected",
    )

    severity: Mapped[IncidentSeverity] = mapped_column(
        enum_type(IncidentSeverity, "incident_severity"),
        nullable=False,
        default=IncidentSeverity.MEDIUM,
    )

    status: Mapped[IncidentStatus] = mapped_column(
        enum_type(IncidentStatus, "incident_status"),
        nullable=False,
        default=IncidentStatus.OPEN,
    )

    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    resolved_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=True,
        comment="User ID who confirmed resolution",
    )

    # Relationships
    corrective_actions: Mapped[list["CorrectiveAction"]] = relationship(
        back_populates="incident",
        lazy="selectin",
        order_by="CorrectiveAction.created_at",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Incident {self.title!r} ({self.status.value})>"


class CorrectiveAction(BaseModel):
    """Remediation step recorded against an incident."""

    __tablename__ = "corrective_actions"
    __table_args__ = (
        Index("ix_corrective_actions_org_incident", "organization_id", "incident_id"),
    )

    incident_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("incidents.id"),
        nullable=False,
        comment="Parent incident",
    )

    description: Mapped[str] = mapped_column(Text, nullable=False)

    implementation_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="When the action was (or will be) implemented",
    )

    responsible_user: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Person in charge",
    )

    status: Mapped[CorrectiveActionStatus] = mapped_column(
        enum_type(CorrectiveActionStatus, "corrective_action_status"),
        nullable=False,
        default=CorrectiveActionStatus.PENDING,
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    incident: Mapped[Incident] = relationship(back_populates="corrective_actions")

    def __repr__(self) -> str:
        """String representation."""
        return f"<CorrectiveAction {self.id} ({self.status.value})>"
