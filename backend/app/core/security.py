"""Security utilities: password hashing, session JWTs, token hashing."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SESSION_TOKEN_TYPE = "session"
PENDING_2FA_TOKEN_TYPE = "2fa_pending"
PENDING_SETUP_TOKEN_TYPE = "2fa_setup"
PENDING_TOKEN_TYPES = frozenset({PENDING_2FA_TOKEN_TYPE, PENDING_SETUP_TOKEN_TYPE})

_password_hasher = PasswordHasher()

# Verified when the account does not exist so both paths cost the same
_DUMMY_PASSWORD_HASH = _password_hasher.hash("chirisu-dummy-password")


def hash_password(plain_password: str) -> str:
    """Hash a plain password using Argon2."""
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain password against a hash (constant time)."""
    if not password_hash:
        burn_password_check(plain_password)
        return False
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError) as e:
        logger.warning("Password verification error", extra={"error_type": type(e).__name__})
        return False


def burn_password_check(plain_password: str) -> None:
    """Spend one hash verification without a real account."""
    try:
        _password_hasher.verify(_DUMMY_PASSWORD_HASH, plain_password)
    except VerifyMismatchError:
        pass


def hash_token(token: str) -> str:
    """Hash a token using SHA256 with pepper."""
    if not settings.TOKEN_PEPPER:
        raise ValueError("TOKEN_PEPPER must be set")

    combined = f"{settings.TOKEN_PEPPER}:{token}"
    return hashlib.sha256(combined.encode()).hexdigest()


def _require_secret() -> str:
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET must be set")
    return settings.JWT_SECRET


@dataclass(frozen=True)
class SessionClaims:
    """Decoded session token."""

    user_id: int
    username: str
    email: str
    is_admin: bool
    is_moderator: bool
    jti: str
    expires_at: datetime
    roles: list[str] = field(default_factory=list)


def create_session_token(user: Any) -> str:
    """Create a signed session JWT for an authenticated user."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.SESSION_EXPIRE_DAYS)

    payload = {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "is_admin": user.is_admin,
        "is_moderator": user.is_moderator,
        "roles": user.roles,
        "iat": now,
        "exp": expire,
        "jti": str(uuid4()),
        "type": SESSION_TOKEN_TYPE,
    }

    return jwt.encode(payload, _require_secret(), algorithm=settings.JWT_ALG)


def decode_session_token(token: str | None) -> SessionClaims | None:
    """Decode a session token. Returns None for anything that is not a valid session."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            _require_secret(),
            algorithms=[settings.JWT_ALG],
            options={"require": ["sub", "exp", "iat", "jti"]},
        )
        if payload.get("type") != SESSION_TOKEN_TYPE:
            return None
        return SessionClaims(
            user_id=int(payload["sub"]),
            username=str(payload.get("username", "")),
            email=str(payload.get("email", "")),
            is_admin=bool(payload.get("is_admin", False)),
            is_moderator=bool(payload.get("is_moderator", False)),
            roles=list(payload.get("roles") or []),
            jti=str(payload["jti"]),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except jwt.PyJWTError:
        return None
    except (KeyError, TypeError, ValueError):
        return None


def create_pending_token(user_id: int, token_type: str) -> str:
    """Create a short-lived token proving the password step passed."""
    if token_type not in PENDING_TOKEN_TYPES:
        raise ValueError(f"Unknown pending token type: {token_type}")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=settings.MFA_PENDING_EXPIRE_MINUTES),
        "jti": str(uuid4()),
        "type": token_type,
    }
    return jwt.encode(payload, _require_secret(), algorithm=settings.JWT_ALG)


def decode_pending_token(token: str | None, token_type: str) -> int | None:
    """Return the user id carried by a pending token of the given type, else None."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            _require_secret(),
            algorithms=[settings.JWT_ALG],
            options={"require": ["sub", "exp"]},
        )
        if payload.get("type") != token_type:
            return None
        return int(payload["sub"])
    except jwt.PyJWTError:
        return None
    except (KeyError, TypeError, ValueError):
        return None
