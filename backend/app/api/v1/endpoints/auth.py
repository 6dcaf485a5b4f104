"""Authentication endpoints: registration, login, session, logout."""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.core.app_exceptions import AppError
from app.core.audit import AuditAction, write_audit
from app.core.dependencies import (
    get_current_user,
    get_session_token,
    require_pending_user_id,
)
from app.core.logging import get_logger
from app.core.security import PENDING_2FA_TOKEN_TYPE, PENDING_SETUP_TOKEN_TYPE, decode_session_token
from app.core.security_logging import log_security_event
from app.core.session import (
    clear_pending_cookie,
    clear_session_cookie,
    issue_session,
    set_pending_cookie,
)
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    TwoFactorSetupPayload,
    UserResponse,
)
from app.schemas.common import StatusResponse
from app.schemas.two_factor import PendingCodeRequest
from app.security.rate_limit import (
    RateLimitStore,
    check_email_limit,
    get_rate_limit_store,
    limit_by_ip,
)
from app.security.token_blacklist import blacklist_session
from app.services import credentials, login as login_flow, two_factor
from app.services.login import LoginState
from app.services.recovery import issue_recovery_code

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an account and stage 2FA. A session is issued after /verify-registration.",
)
async def register(
    request_data: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.register")),
) -> RegisterResponse:
    user = credentials.create_user(
        db,
        username=request_data.username,
        email=request_data.email,
        password=request_data.password,
    )
    material = two_factor.stage_enrollment(db, user)
    recovery_code = issue_recovery_code(db, user)
    write_audit(db, AuditAction.REGISTER, user_id=user.id, request=request)
    db.commit()

    log_security_event(request, event_type="auth_register", outcome="allow", user_id=user.id)

    set_pending_cookie(response, user.id, PENDING_SETUP_TOKEN_TYPE)
    return RegisterResponse(
        user=UserResponse.from_user(user),
        two_factor_setup=TwoFactorSetupPayload(
            secret=material.secret,
            qr_code=material.qr_code,
            backup_codes=material.backup_codes,
            recovery_code=recovery_code,
        ),
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Log in",
    description=(
        "Check email and password. Accounts with 2FA get a pending cookie and must call "
        "/2fa/verify; accounts that must enroll get requiresSetup."
    ),
)
async def login(
    request_data: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    store: RateLimitStore = Depends(get_rate_limit_store),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.login")),
) -> LoginResponse:
    check_email_limit(store, request, "auth.login", request_data.email)

    try:
        outcome = login_flow.begin_login(db, request_data.email, request_data.password)
    except AppError as e:
        log_security_event(request, event_type="auth_login_failed", outcome="deny", reason_code=e.code)
        raise

    user = outcome.user
    if outcome.state is LoginState.TWO_FACTOR_PENDING:
        set_pending_cookie(response, user.id, PENDING_2FA_TOKEN_TYPE)
        log_security_event(request, event_type="2fa_challenge_issued", outcome="allow", user_id=user.id)
        return LoginResponse(requires_2fa=True, user_id=user.id)

    if outcome.state is LoginState.SETUP_REQUIRED:
        set_pending_cookie(response, user.id, PENDING_SETUP_TOKEN_TYPE)
        log_security_event(request, event_type="2fa_setup_required", outcome="allow", user_id=user.id)
        return LoginResponse(requires_2fa=False, requires_setup=True, user_id=user.id)

    write_audit(db, AuditAction.LOGIN, user_id=user.id, details={"method": "password"}, request=request)
    db.commit()
    issue_session(response, user)
    log_security_event(request, event_type="auth_login_success", outcome="allow", user_id=user.id)
    return LoginResponse(requires_2fa=False, user=UserResponse.from_user(user))


@router.post(
    "/verify-registration",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Finish 2FA enrollment",
    description="Confirm the staged 2FA secret with a code and receive a session.",
)
async def verify_registration(
    request_data: PendingCodeRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    _rate_limit_ip: None = Depends(limit_by_ip("auth.2fa")),
) -> SessionResponse:
    user_id = require_pending_user_id(request, request_data.user_id, PENDING_SETUP_TOKEN_TYPE)

    try:
        outcome = login_flow.complete_setup(db, user_id, request_data.code)
    except AppError as e:
        log_security_event(
            request, event_type="2fa_enroll_failed", outcome="deny", reason_code=e.code, user_id=user_id
        )
        raise

    user = outcome.user
    write_audit(db, AuditAction.TWO_FACTOR_ENABLED, user_id=user.id, request=request)
    write_audit(db, AuditAction.LOGIN, user_id=user.id, details={"method": "2fa_setup"}, request=request)
    db.commit()

    clear_pending_cookie(response)
    issue_session(response, user)
    log_security_event(request, event_type="2fa_enrolled", outcome="allow", user_id=user.id)
    return SessionResponse(user=UserResponse.from_user(user))


@router.get(
    "/session",
    response_model=SessionResponse,
    summary="Current session",
    description="Return the signed-in user, re-read from the database.",
)
async def get_session(current_user: User = Depends(get_current_user)) -> SessionResponse:
    return SessionResponse(user=UserResponse.from_user(current_user))


@router.post(
    "/logout",
    response_model=StatusResponse,
    summary="Log out",
    description="Clear the session cookie and revoke the token. Works without a valid session.",
)
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> StatusResponse:
    claims = decode_session_token(get_session_token(request))
    if claims is not None:
        blacklist_session(claims.jti, claims.expires_at)
        if db.get(User, claims.user_id) is not None:
            write_audit(db, AuditAction.LOGOUT, user_id=claims.user_id, request=request)
            db.commit()
        log_security_event(request, event_type="auth_logout", outcome="allow", user_id=claims.user_id)

    clear_session_cookie(response)
    clear_pending_cookie(response)
    return StatusResponse(message="Logged out")
