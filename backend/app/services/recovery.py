"""Password recovery without email.

Step one proves the user holds the recovery code for an email and shows a
masked hint. Step two requires a second-factor code as well, then sets the
new password and rotates the recovery code.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.app_exceptions import AccountInactive, InvalidCredentials, ValidationFailed
from app.core.mfa import (
    generate_recovery_code,
    hash_recovery_code,
    is_recovery_code_format,
    mask_email,
    mask_recovery_hint,
    recovery_code_hint,
)
from app.core.security import hash_password
from app.models.recovery import RecoveryCode
from app.models.user import User
from app.services.credentials import normalize_email
from app.services.two_factor import SecondFactorResult, verify_second_factor

RECOVERY_MISMATCH_MESSAGE = "Email or recovery code is incorrect"
INVALID_RECOVERY_CODE_MESSAGE = "Invalid recovery code"


@dataclass
class RecoveryIdentity:
    user_id: int
    username: str
    masked_email: str
    recovery_code_hint: str


@dataclass
class RecoveryResult:
    user: User
    new_recovery_code: str
    second_factor: SecondFactorResult


def issue_recovery_code(db: Session, user: User) -> str:
    """Create or rotate the user's recovery code. The plaintext is returned once."""
    code = generate_recovery_code()
    record = user.recovery_code
    if record is None:
        user.recovery_code = RecoveryCode(
            code_hash=hash_recovery_code(code),
            code_hint=recovery_code_hint(code),
        )
    else:
        record.code_hash = hash_recovery_code(code)
        record.code_hint = recovery_code_hint(code)
        record.last_regenerated_at = datetime.now(timezone.utc)
    db.flush()
    return code


def verify_recovery_identity(db: Session, email: str, recovery_code: str) -> RecoveryIdentity:
    """Match an email with a recovery code. Any mismatch is the same error."""
    if not is_recovery_code_format(recovery_code):
        raise InvalidCredentials(message=RECOVERY_MISMATCH_MESSAGE)

    user = (
        db.query(User)
        .join(RecoveryCode, RecoveryCode.user_id == User.id)
        .filter(
            User.email == normalize_email(email),
            RecoveryCode.code_hash == hash_recovery_code(recovery_code),
        )
        .first()
    )
    if user is None or not user.can_authenticate:
        raise InvalidCredentials(message=RECOVERY_MISMATCH_MESSAGE)

    return RecoveryIdentity(
        user_id=user.id,
        username=user.username,
        masked_email=mask_email(user.email),
        recovery_code_hint=mask_recovery_hint(user.recovery_code.code_hint),
    )


def recover_password(
    db: Session,
    recovery_code: str,
    second_factor_code: str,
    new_password: str,
) -> RecoveryResult:
    """
    Reset a password with recovery code plus second factor.

    Order: resolve the account, check the second factor (a backup code is
    consumed here), store the new password hash, rotate the recovery code.
    All of it lands in the caller's transaction.
    """
    if not is_recovery_code_format(recovery_code):
        raise InvalidCredentials(message=INVALID_RECOVERY_CODE_MESSAGE)

    record = (
        db.query(RecoveryCode)
        .filter(RecoveryCode.code_hash == hash_recovery_code(recovery_code))
        .first()
    )
    if record is None:
        raise InvalidCredentials(message=INVALID_RECOVERY_CODE_MESSAGE)

    user = record.user
    if not user.can_authenticate:
        raise AccountInactive()
    if not user.two_factor_enabled:
        raise ValidationFailed(
            message="Two-factor authentication must be enabled to recover this account"
        )

    second_factor = verify_second_factor(db, user, second_factor_code)

    user.password_hash = hash_password(new_password)
    new_code = issue_recovery_code(db, user)

    return RecoveryResult(user=user, new_recovery_code=new_code, second_factor=second_factor)
