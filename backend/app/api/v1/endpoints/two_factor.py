"""Two-factor endpoints: staged setup, verification and management."""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.core.app_exceptions import AppError
from app.core.audit import AuditAction, write_audit
from app.core.dependencies import get_current_user, require_pending_user_id
from app.core.security import PENDING_2FA_TOKEN_TYPE, PENDING_SETUP_TOKEN_TYPE
from app.core.security_logging import log_security_event
from app.core.session import clear_pending_cookie, issue_session
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import UserResponse
from app.schemas.common import StatusResponse
from app.schemas.two_factor import (
    BackupCodesResponse,
    CodeRequest,
    DisableRequest,
    PendingCodeRequest,
    PendingSetupRequest,
    SetupResponse,
    VerifyResponse,
)
from app.security.rate_limit import limit_by_ip
from app.services import login as login_flow, two_factor
from app.services.recovery import issue_recovery_code

router = APIRouter()


@router.post(
    "/setup",
    response_model=SetupResponse,
    status_code=status.HTTP_200_OK,
    summary="Start 2FA setup",
    description="Stage a new TOTP secret and backup codes. Nothing is enabled until /enable.",
)
async def setup(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SetupResponse:
    material = two_factor.stage_enrollment(db, current_user)
    db.commit()

    log_security_event(request, event_type="2fa_setup_started", outcome="allow", user_id=current_user.id)
    return SetupResponse(
        secret=material.secret,
        qr_code=material.qr_code,
        provisioning_uri=material.provisioning_uri,
        backup_codes=material.backup_codes,
    )


@router.post(
    "/pending-setup",
    response_model=SetupResponse,
    summary="Setup material for forced enrollment",
    description=(
        "For accounts that logged in with requiresSetup. Reuses an unconfirmed secret, "
        "issues fresh backup codes and a recovery code if the account has none."
    ),
)
async def pending_setup(
    request_data: PendingSetupRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.2fa")),
) -> SetupResponse:
    user_id = require_pending_user_id(request, request_data.user_id, PENDING_SETUP_TOKEN_TYPE)
    user = login_flow.load_pending_user(db, user_id)

    material = two_factor.stage_enrollment(db, user, reuse_staged_secret=True)
    recovery_code = issue_recovery_code(db, user) if user.recovery_code is None else None
    db.commit()

    return SetupResponse(
        secret=material.secret,
        qr_code=material.qr_code,
        provisioning_uri=material.provisioning_uri,
        backup_codes=material.backup_codes,
        recovery_code=recovery_code,
    )


@router.post(
    "/enable",
    response_model=StatusResponse,
    summary="Enable 2FA",
    description="Confirm the staged secret with a current TOTP code.",
)
async def enable(
    request_data: CodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.2fa")),
) -> StatusResponse:
    try:
        two_factor.confirm_enrollment(db, current_user, request_data.code)
    except AppError as e:
        log_security_event(
            request, event_type="2fa_enable_failed", outcome="deny", reason_code=e.code, user_id=current_user.id
        )
        raise

    write_audit(db, AuditAction.TWO_FACTOR_ENABLED, user_id=current_user.id, request=request)
    db.commit()

    log_security_event(request, event_type="2fa_enabled", outcome="allow", user_id=current_user.id)
    return StatusResponse(message="Two-factor authentication enabled")


@router.post(
    "/verify",
    response_model=VerifyResponse,
    summary="Verify 2FA at login",
    description="Second login step. Accepts a TOTP code or an unused backup code.",
)
async def verify(
    request_data: PendingCodeRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.2fa")),
) -> VerifyResponse:
    user_id = require_pending_user_id(request, request_data.user_id, PENDING_2FA_TOKEN_TYPE)

    try:
        outcome = login_flow.complete_two_factor(db, user_id, request_data.code)
    except AppError as e:
        log_security_event(
            request, event_type="2fa_verify_failed", outcome="deny", reason_code=e.code, user_id=user_id
        )
        raise

    user = outcome.user
    result = outcome.second_factor
    write_audit(
        db,
        AuditAction.LOGIN,
        user_id=user.id,
        details={"method": result.method.value},
        request=request,
    )
    db.commit()

    clear_pending_cookie(response)
    issue_session(response, user)
    log_security_event(
        request,
        event_type="2fa_verified",
        outcome="allow",
        user_id=user.id,
        method=result.method.value,
    )
    return VerifyResponse(
        user=UserResponse.from_user(user),
        used_backup_code=result.used_backup_code,
        backup_codes_remaining=result.backup_codes_remaining,
    )


@router.post(
    "/disable",
    response_model=StatusResponse,
    summary="Disable 2FA",
    description="Requires the current password. Removes the secret and all backup codes.",
)
async def disable(
    request_data: DisableRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    try:
        two_factor.disable(db, current_user, request_data.password)
    except AppError as e:
        log_security_event(
            request, event_type="2fa_disable_failed", outcome="deny", reason_code=e.code, user_id=current_user.id
        )
        raise

    write_audit(db, AuditAction.TWO_FACTOR_DISABLED, user_id=current_user.id, request=request)
    db.commit()

    log_security_event(request, event_type="2fa_disabled", outcome="allow", user_id=current_user.id)
    return StatusResponse(message="Two-factor authentication disabled")


@router.post(
    "/backup-codes/regenerate",
    response_model=BackupCodesResponse,
    summary="Regenerate backup codes",
    description="Requires a current TOTP code. Previous backup codes stop working.",
)
async def regenerate_backup_codes(
    request_data: CodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.2fa")),
) -> BackupCodesResponse:
    codes = two_factor.regenerate_backup_codes(db, current_user, request_data.code)
    write_audit(db, AuditAction.BACKUP_CODES_REGENERATED, user_id=current_user.id, request=request)
    db.commit()

    log_security_event(request, event_type="backup_codes_regenerated", outcome="allow", user_id=current_user.id)
    return BackupCodesResponse(backup_codes=codes)
