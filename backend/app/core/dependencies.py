"""FastAPI dependencies for authentication and authorization."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.app_exceptions import AccountInactive, Forbidden, Unauthenticated
from app.core.config import settings
from app.core.security import SessionClaims, decode_pending_token, decode_session_token
from app.db.session import get_db
from app.models.user import User, UserRole
from app.security.token_blacklist import is_session_blacklisted


def get_session_token(request: Request) -> str | None:
    """Session cookie, or a Bearer token for non-browser clients."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_session_claims(request: Request) -> SessionClaims:
    """Decoded, unrevoked session claims. Fails closed."""
    claims = decode_session_token(get_session_token(request))
    if claims is None or is_session_blacklisted(claims.jti):
        raise Unauthenticated(message="Not authenticated")
    return claims


def get_current_user(
    claims: SessionClaims = Depends(get_session_claims),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the session to a user, re-checked against the store on every request."""
    user = db.get(User, claims.user_id)
    if user is None or user.deleted_at is not None:
        raise Unauthenticated(message="Session user no longer exists")
    if not user.is_active:
        raise AccountInactive()
    return user


def require_roles(*allowed_roles: UserRole):
    """Dependency factory to require specific roles (read from the store)."""

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if UserRole(current_user.role) not in allowed_roles:
            raise Forbidden(
                details={"required_roles": [r.value for r in allowed_roles]},
            )
        return current_user

    return role_checker


def require_pending_user_id(request: Request, body_user_id: int, token_type: str) -> int:
    """The body's userId must match the pending cookie set by the previous step."""
    cookie_user_id = decode_pending_token(
        request.cookies.get(settings.MFA_PENDING_COOKIE_NAME), token_type
    )
    if cookie_user_id is None or cookie_user_id != body_user_id:
        raise Unauthenticated(message="Verification session expired. Please log in again.")
    return cookie_user_id
