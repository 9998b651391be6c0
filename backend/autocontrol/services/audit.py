"""
Audit trail of sensitive operations.

Entries are appended after the audited operation has committed. A failing
insert is logged and rolled back; it never turns a completed operation
into an error response.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.context import TenantContext
from autocontrol.core.exceptions import InvalidStateTransitionError
from autocontrol.core.logging import redact
from autocontrol.models.audit import AuditAction, AuditLog, AuditResource
from autocontrol.services.records import FilterSpec, RecordService, enum_parser, parse_bool

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 500


@dataclass(frozen=True)
class RequestOrigin:
    """Where an audited request came from."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditTrail(RecordService[AuditLog]):  # type: ignore[type-var]
    """
    Append-only audit log of one organization.

    Listing reuses the tenant-scoped query of `RecordService`; entries are
    written through `record()` only.
    """

    model = AuditLog
    label = "Audit log"
    filters = {
        "userId": FilterSpec("user_id", UUID),
        "action": FilterSpec("action", enum_parser(AuditAction)),
        "resource": FilterSpec("resource", enum_parser(AuditResource)),
        "success": FilterSpec("success", parse_bool),
    }
    sort_fields = frozenset({"created_at"})

    def __init__(self, session: AsyncSession, origin: Optional[RequestOrigin] = None) -> None:
        super().__init__(session)
        self.origin = origin or RequestOrigin()

    async def record(
        self,
        organization_id: UUID,
        action: AuditAction,
        resource: AuditResource,
        *,
        user_id: Optional[UUID] = None,
        resource_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """Append one entry; returns None when it could not be stored."""
        user_agent = self.origin.user_agent
        entry = AuditLog(
            organization_id=organization_id,
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            details=redact(details or {}),
            ip_address=self.origin.ip_address,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
            success=success,
            error_message=error_message,
        )
        self.session.add(entry)
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception(
                "Failed to write audit log",
                extra={
                    "organization_id": str(organization_id),
                    "action": action.value,
                    "resource": resource.value,
                },
            )
            return None
        return entry

    async def record_for(
        self,
        context: TenantContext,
        action: AuditAction,
        resource: AuditResource,
        resource_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Append a successful action performed by the authenticated caller."""
        return await self.record(
            context.organization_id,
            action,
            resource,
            user_id=context.user_id,
            resource_id=resource_id,
            details=details,
        )

    async def create(self, context: TenantContext, payload: dict[str, Any]) -> AuditLog:
        raise InvalidStateTransitionError("Audit log entries are written by the system only")

    async def update(self, context: TenantContext, record_id: UUID, patch: dict[str, Any]) -> AuditLog:
        raise InvalidStateTransitionError("Audit log entries cannot be changed")

    async def delete(self, context: TenantContext, record_id: UUID, confirm: bool = False) -> None:
        raise InvalidStateTransitionError("Audit log entries cannot be deleted")

    async def stats(
        self,
        context: TenantContext,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Totals and per-action counts of the caller's organization."""
        conditions = [AuditLog.organization_id == context.organization_id]
        if date_from is not None:
            conditions.append(AuditLog.created_at >= date_from)
        if date_to is not None:
            conditions.append(AuditLog.created_at <= date_to)

        totals = (
            await self.session.execute(
                select(
                    func.count(AuditLog.id),
                    func.coalesce(func.sum(case((AuditLog.success.is_(True), 1), else_=0)), 0),
                    func.count(func.distinct(AuditLog.user_id)),
                ).where(*conditions)
            )
        ).one()
        total, successful, unique_users = int(totals[0]), int(totals[1]), int(totals[2])

        rows = await self.session.execute(
            select(AuditLog.action, func.count(AuditLog.id))
            .where(*conditions)
            .group_by(AuditLog.action)
        )
        by_action = {action.value: count for action, count in rows.all()}

        return {
            "total_actions": total,
            "successful_actions": successful,
            "failed_actions": total - successful,
            "unique_users": unique_users,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
            "by_action": by_action,
        }
