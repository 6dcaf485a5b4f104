"""Credential checks and account creation."""

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.app_exceptions import Conflict, InvalidCredentials
from app.core.security import burn_password_check, hash_password, verify_password
from app.models.user import User, UserRole


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate(db: Session, email: str, password: str) -> User:
    """
    Return the user owning these credentials.

    Unknown email, wrong password, and inactive or deleted accounts all
    raise the same InvalidCredentials so callers cannot tell them apart.
    A password hash is verified on every path.
    """
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None:
        burn_password_check(password)
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()

    if not user.can_authenticate:
        raise InvalidCredentials()

    return user


def create_user(
    db: Session,
    username: str,
    email: str,
    password: str,
    role: UserRole = UserRole.USER,
) -> User:
    """Insert a new account. Raises Conflict if the email or username is taken."""
    email = normalize_email(email)
    username = username.strip()

    existing = (
        db.query(User)
        .filter(or_(User.email == email, User.username == username))
        .first()
    )
    if existing is not None:
        field = "email" if existing.email == email else "username"
        raise Conflict(
            message=f"An account with this {field} already exists",
            details={"field": field},
        )

    user = User(
        email=email,
        username=username,
        display_name=username,
        password_hash=hash_password(password),
        role=role.value,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    """Replace the password after re-checking the current one against the store."""
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials(message="Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.flush()
