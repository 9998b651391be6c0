"""Database models for Autocontrol."""

from autocontrol.models.base import Base
from autocontrol.models.organization import Organization, SubscriptionPlan, SubscriptionStatus
from autocontrol.models.user import User, UserRole
from autocontrol.models.delivery import DeliveryRecord
from autocontrol.models.storage import StorageRecord, StorageUnit, StorageUnitType
from autocontrol.models.technical_sheet import TechnicalSheet
from autocontrol.models.incident import (
    CorrectiveAction,
    CorrectiveActionStatus,
    Incident,
    IncidentSeverity,
    IncidentStatus,
)
from autocontrol.models.audit import AuditAction, AuditLog, AuditResource

__all__ = [
    "Base",
    "Organization",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "User",
    "UserRole",
    "DeliveryRecord",
    "StorageUnit",
    "StorageUnitType",
    "StorageRecord",
    "TechnicalSheet",
    "Incident",
    "IncidentSeverity",
    "IncidentStatus",
    "CorrectiveAction",
    "CorrectiveActionStatus",
    "AuditLog",
    "AuditAction",
    "AuditResource",
]
