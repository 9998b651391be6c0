"""Pydantic schemas for the audit trail."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from autocontrol.models.audit import AuditAction, AuditResource
from autocontrol.schemas.common import CamelModel


class AuditLogResponse(CamelModel):
    id: UUID
    user_id: Optional[UUID] = Field(None, description="Acting user (null for anonymous requests)")
    action: AuditAction
    resource: AuditResource
    resource_id: Optional[UUID] = None
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool
    error_message: Optional[str] = None
    created_at: datetime = Field(..., description="When the action happened")


class AuditStats(CamelModel):
    total_actions: int
    successful_actions: int
    failed_actions: int
    unique_users: int
    success_rate: float = Field(..., description="Percentage of successful actions")
    by_action: dict[str, int] = Field(default_factory=dict, description="Count per action")
