"""Audit logging helpers."""

from enum import Enum
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from app.common.request_id import get_request_id
from app.core.security_logging import get_client_ip
from app.models.audit import AuditLog
from app.models.content import ContentRef


class AuditAction(str, Enum):
    REGISTER = "register"
    LOGIN = "login"
    LOGOUT = "logout"
    TWO_FACTOR_ENABLED = "2fa_enabled"
    TWO_FACTOR_DISABLED = "2fa_disabled"
    BACKUP_CODES_REGENERATED = "backup_codes_regenerated"
    PASSWORD_RESET = "password_reset"
    CHANGE_PASSWORD = "change_password"


AUTH_RESOURCE = "auth"


def write_audit(
    db: Session,
    action: AuditAction | str,
    user_id: int | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
    target: ContentRef | None = None,
) -> AuditLog:
    """
    Add an audit log entry to the session. The caller commits.

    Args:
        db: Database session
        action: What happened
        user_id: Acting user, if known
        details: Extra non-secret context
        request: FastAPI request (for request_id and client IP)
        target: Catalog row the action touched; auth actions leave it empty
    """
    entry = AuditLog(
        user_id=user_id,
        action=action.value if isinstance(action, AuditAction) else action,
        resource_type=target.kind.value if target else AUTH_RESOURCE,
        resource_id=target.id if target else None,
        details=details or {},
    )
    if request is not None:
        entry.request_id = get_request_id(request)
        entry.ip_address = get_client_ip(request)

    db.add(entry)
    return entry
