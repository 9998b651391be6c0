"""API dependencies."""

from autocontrol.api.dependencies.auth import (
    Audit,
    ClientIP,
    CurrentContext,
    CurrentUser,
    DbSession,
    Dispatcher,
    Throttle,
    get_audit_trail,
    get_client_ip,
    get_current_user,
    get_email_dispatcher,
    get_request_context,
    require_permission,
    require_role,
)

__all__ = [
    "Audit",
    "ClientIP",
    "CurrentContext",
    "CurrentUser",
    "DbSession",
    "Dispatcher",
    "Throttle",
    "get_audit_trail",
    "get_client_ip",
    "get_current_user",
    "get_email_dispatcher",
    "get_request_context",
    "require_permission",
    "require_role",
]
