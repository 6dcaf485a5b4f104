"""Session and pending-2FA cookies."""

from fastapi import Response

from app.core.config import settings
from app.core.security import (
    PENDING_2FA_TOKEN_TYPE,
    create_pending_token,
    create_session_token,
)
from app.models.user import User


def _secure() -> bool:
    return settings.ENV == "prod"


def issue_session(response: Response, user: User) -> str:
    """Sign a session token for the user and set it as the session cookie."""
    token = create_session_token(user)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=_secure(),
        samesite="lax",
        path="/",
    )
    return token


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=_secure(),
        samesite="lax",
    )


def set_pending_cookie(
    response: Response, user_id: int, token_type: str = PENDING_2FA_TOKEN_TYPE
) -> None:
    """Remember that user_id passed the password step, for the next step only."""
    response.set_cookie(
        key=settings.MFA_PENDING_COOKIE_NAME,
        value=create_pending_token(user_id, token_type),
        max_age=settings.MFA_PENDING_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=_secure(),
        samesite="lax",
        path="/",
    )


def clear_pending_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.MFA_PENDING_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=_secure(),
        samesite="lax",
    )
