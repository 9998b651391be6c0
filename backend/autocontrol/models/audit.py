"""Audit log model - Append-only trail of sensitive operations per organization."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from autocontrol.models.base import Base, JSONType, TenantMixin, UTCDateTime, enum_type, utcnow


class AuditAction(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"
    PASSWORD_RESET = "PASSWORD_RESET"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    INVITE_USER = "INVITE_USER"
    REMOVE_USER = "REMOVE_USER"
    CHANGE_ROLE = "CHANGE_ROLE"
    UPDATE_ORGANIZATION = "UPDATE_ORGANIZATION"
    EXPORT_DATA = "EXPORT_DATA"


class AuditResource(str, Enum):
    AUTHENTICATION = "Authentication"
    USER = "User"
    ORGANIZATION = "Organization"
    DELIVERY_RECORD = "DeliveryRecord"
    STORAGE_UNIT = "StorageUnit"
    STORAGE_RECORD = "StorageRecord"
    TECHNICAL_SHEET = "TechnicalSheet"
    INCIDENT = "Incident"
    CORRECTIVE_ACTION = "CorrectiveAction"


class AuditLog(Base, TenantMixin):
    """
    One audited operation.

    Rows are written once and never updated. Failed logins against a known
    account are kept too (success=False), so the trail shows lockout attempts.
    """

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )

    user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="User who performed the action (NULL for anonymous requests)",
    )

    action: Mapped[AuditAction] = mapped_column(
        enum_type(AuditAction, "audit_action"),
        nullable=False,
    )

    resource: Mapped[AuditResource] = mapped_column(
        enum_type(AuditResource, "audit_resource"),
        nullable=False,
    )

    resource_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Affected record, when the action targets one",
    )

    details: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Changed field names and context - credentials are redacted",
    )

    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )

    user_agent: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )

    success: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        comment="When the action happened",
    )

    __table_args__ = (
        Index("ix_audit_logs_org_created", "organization_id", "created_at"),
        Index("ix_audit_logs_org_user_created", "organization_id", "user_id", "created_at"),
        Index("ix_audit_logs_org_action_created", "organization_id", "action", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action.value} {self.resource.value}:{self.resource_id} by user={self.user_id}>"
