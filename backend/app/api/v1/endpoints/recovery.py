"""Password recovery endpoints (recovery code + second factor, no email)."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.app_exceptions import AppError
from app.core.audit import AuditAction, write_audit
from app.core.security_logging import log_security_event
from app.db.session import get_db
from app.schemas.recovery import (
    RecoverPasswordRequest,
    RecoverPasswordResponse,
    RecoveryVerifyEmailRequest,
    RecoveryVerifyEmailResponse,
)
from app.security.rate_limit import limit_by_ip
from app.services import recovery

router = APIRouter()


@router.post(
    "/verify-email",
    response_model=RecoveryVerifyEmailResponse,
    status_code=status.HTTP_200_OK,
    summary="Check email and recovery code",
    description="Returns a masked hint only when the email owns the recovery code.",
)
async def verify_email(
    request_data: RecoveryVerifyEmailRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.recovery")),
) -> RecoveryVerifyEmailResponse:
    try:
        identity = recovery.verify_recovery_identity(
            db, request_data.email, request_data.recovery_code
        )
    except AppError as e:
        log_security_event(request, event_type="recovery_identity_failed", outcome="deny", reason_code=e.code)
        raise

    log_security_event(request, event_type="recovery_identity_verified", outcome="allow", user_id=identity.user_id)
    return RecoveryVerifyEmailResponse(
        user_id=identity.user_id,
        username=identity.username,
        email=identity.masked_email,
        recovery_code_hint=identity.recovery_code_hint,
    )


@router.post(
    "",
    response_model=RecoverPasswordResponse,
    status_code=status.HTTP_200_OK,
    summary="Reset password",
    description=(
        "Set a new password using the recovery code and a TOTP or backup code. "
        "The recovery code is rotated; the new one is returned once."
    ),
)
async def recover_password(
    request_data: RecoverPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.recovery")),
) -> RecoverPasswordResponse:
    try:
        result = recovery.recover_password(
            db,
            recovery_code=request_data.recovery_code,
            second_factor_code=request_data.two_factor_code,
            new_password=request_data.new_password,
        )
    except AppError as e:
        log_security_event(request, event_type="password_recovery_failed", outcome="deny", reason_code=e.code)
        raise

    second_factor = result.second_factor
    write_audit(
        db,
        AuditAction.PASSWORD_RESET,
        user_id=result.user.id,
        details={
            "method": second_factor.method.value,
            "backup_codes_remaining": second_factor.backup_codes_remaining,
        },
        request=request,
    )
    db.commit()

    log_security_event(
        request,
        event_type="password_recovered",
        outcome="allow",
        user_id=result.user.id,
        method=second_factor.method.value,
    )
    return RecoverPasswordResponse(
        message="Password updated. Store your new recovery code somewhere safe.",
        new_recovery_code=result.new_recovery_code,
        used_backup_code=second_factor.used_backup_code,
        backup_codes_remaining=second_factor.backup_codes_remaining,
    )
