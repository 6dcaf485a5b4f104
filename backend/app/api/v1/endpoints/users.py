"""Signed-in user account endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.app_exceptions import AppError
from app.core.audit import AuditAction, write_audit
from app.core.dependencies import get_current_user
from app.core.security_logging import log_security_event
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import ChangePasswordRequest
from app.schemas.common import StatusResponse
from app.services import credentials

router = APIRouter()


@router.patch(
    "/change-password",
    response_model=StatusResponse,
    summary="Change password",
    description="Requires the current password. Existing sessions stay valid.",
)
async def change_password(
    request_data: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    try:
        credentials.change_password(
            db, current_user, request_data.current_password, request_data.new_password
        )
    except AppError as e:
        log_security_event(
            request, event_type="password_change_failed", outcome="deny", reason_code=e.code, user_id=current_user.id
        )
        raise

    write_audit(db, AuditAction.CHANGE_PASSWORD, user_id=current_user.id, request=request)
    db.commit()

    log_security_event(request, event_type="password_changed", outcome="allow", user_id=current_user.id)
    return StatusResponse(message="Password updated")
