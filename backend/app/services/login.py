"""Login state machine.

CREDENTIALS_PENDING -> TWO_FACTOR_PENDING -> AUTHENTICATED, with
SETUP_REQUIRED for accounts that must enroll before getting a session.
A session is only issued from AUTHENTICATED.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.orm import Session

from app.core.app_exceptions import AccountInactive, Unauthenticated, ValidationFailed
from app.core.config import settings
from app.models.user import User
from app.services import two_factor
from app.services.credentials import authenticate
from app.services.two_factor import SecondFactorResult


class LoginState(str, Enum):
    CREDENTIALS_PENDING = "credentials_pending"
    TWO_FACTOR_PENDING = "two_factor_pending"
    SETUP_REQUIRED = "setup_required"
    AUTHENTICATED = "authenticated"


@dataclass
class LoginOutcome:
    state: LoginState
    user: User
    second_factor: SecondFactorResult | None = None


def state_after_password(user: User) -> LoginState:
    """Where a user lands once the password checked out."""
    if user.two_factor_enabled:
        return LoginState.TWO_FACTOR_PENDING
    if user.two_factor_exempt or not settings.MFA_REQUIRED:
        return LoginState.AUTHENTICATED
    return LoginState.SETUP_REQUIRED


def record_login(user: User) -> None:
    user.last_login_at = datetime.now(timezone.utc)


def begin_login(db: Session, email: str, password: str) -> LoginOutcome:
    user = authenticate(db, email, password)
    state = state_after_password(user)
    if state is LoginState.AUTHENTICATED:
        record_login(user)
    return LoginOutcome(state=state, user=user)


def load_pending_user(db: Session, user_id: int) -> User:
    """Reload the account a pending token points at; it may have changed since."""
    user = db.get(User, user_id)
    if user is None or user.deleted_at is not None:
        raise Unauthenticated()
    if not user.is_active:
        raise AccountInactive()
    return user


def complete_two_factor(db: Session, user_id: int, code: str) -> LoginOutcome:
    user = load_pending_user(db, user_id)
    result = two_factor.verify_second_factor(db, user, code)
    record_login(user)
    return LoginOutcome(state=LoginState.AUTHENTICATED, user=user, second_factor=result)


def complete_setup(db: Session, user_id: int, code: str) -> LoginOutcome:
    """Finish forced enrollment and authenticate."""
    user = load_pending_user(db, user_id)
    if user.two_factor_enabled:
        raise ValidationFailed(
            message="Two-factor authentication is already enabled; verify instead"
        )
    two_factor.confirm_enrollment(db, user, code)
    record_login(user)
    return LoginOutcome(state=LoginState.AUTHENTICATED, user=user)
