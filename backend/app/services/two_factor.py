"""Two-factor enrollment and verification.

Enrollment is staged: ``stage_enrollment`` stores a disabled secret and
fresh backup codes, ``confirm_enrollment`` turns it on once the user
proves they can produce a code. Verification accepts a TOTP code once per
time step, or a backup code exactly once.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from app.core.app_exceptions import AlreadyUsed, InvalidCode, InvalidCredentials, ValidationFailed
from app.core.logging import get_logger
from app.core.mfa import (
    decrypt_totp_secret,
    encrypt_totp_secret,
    generate_backup_codes,
    generate_totp_provisioning_uri,
    generate_totp_secret,
    hash_backup_code,
    is_totp_format,
    match_totp_step,
    qr_code_data_url,
)
from app.core.security import verify_password
from app.models.two_factor import TwoFactorBackupCode, TwoFactorSecret
from app.models.user import User

logger = get_logger(__name__)


class SecondFactorMethod(str, Enum):
    TOTP = "totp"
    BACKUP_CODE = "backup_code"


@dataclass
class EnrollmentMaterial:
    """What the user needs to configure an authenticator. Shown once."""

    secret: str
    provisioning_uri: str
    qr_code: str
    backup_codes: list[str]


@dataclass
class SecondFactorResult:
    method: SecondFactorMethod
    backup_codes_remaining: int

    @property
    def used_backup_code(self) -> bool:
        return self.method is SecondFactorMethod.BACKUP_CODE


def _already_enabled() -> ValidationFailed:
    return ValidationFailed(message="Two-factor authentication is already enabled")


def _not_enabled() -> ValidationFailed:
    return ValidationFailed(message="Two-factor authentication is not enabled")


def count_unused_backup_codes(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(TwoFactorBackupCode.id))
        .filter(
            TwoFactorBackupCode.user_id == user_id,
            TwoFactorBackupCode.used_at.is_(None),
        )
        .scalar()
        or 0
    )


def replace_backup_codes(db: Session, user: User) -> list[str]:
    """Delete every backup code of the user and store a fresh set. Returns plaintext."""
    db.query(TwoFactorBackupCode).filter(TwoFactorBackupCode.user_id == user.id).delete(
        synchronize_session=False
    )
    codes = generate_backup_codes()
    db.add_all(
        TwoFactorBackupCode(user_id=user.id, code_hash=hash_backup_code(code)) for code in codes
    )
    db.flush()
    return codes


def stage_enrollment(db: Session, user: User, reuse_staged_secret: bool = False) -> EnrollmentMaterial:
    """
    Store a disabled TOTP secret and new backup codes for the user.

    With reuse_staged_secret an unconfirmed secret is kept, so a QR code
    scanned earlier stays valid; backup codes are always regenerated.
    """
    record = user.two_factor
    if record is not None and record.enabled:
        raise _already_enabled()

    secret = None
    if record is not None and reuse_staged_secret:
        secret = decrypt_totp_secret(record.secret_encrypted)

    if secret is None:
        secret = generate_totp_secret()
        if record is None:
            user.two_factor = TwoFactorSecret(
                secret_encrypted=encrypt_totp_secret(secret), enabled=False
            )
        else:
            record.secret_encrypted = encrypt_totp_secret(secret)
            record.enabled = False
            record.enabled_at = None
            record.last_used_step = None

    backup_codes = replace_backup_codes(db, user)
    uri = generate_totp_provisioning_uri(secret, user.email)
    return EnrollmentMaterial(
        secret=secret,
        provisioning_uri=uri,
        qr_code=qr_code_data_url(uri),
        backup_codes=backup_codes,
    )


def _claim_totp_step(db: Session, user_id: int, step: int) -> None:
    """Record step as used; AlreadyUsed if it (or a later one) was used before."""
    result = db.execute(
        update(TwoFactorSecret)
        .where(
            TwoFactorSecret.user_id == user_id,
            or_(
                TwoFactorSecret.last_used_step.is_(None),
                TwoFactorSecret.last_used_step < step,
            ),
        )
        .values(last_used_step=step)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyUsed(message="This code has already been used. Wait for the next one.")
    user_2fa = db.get(TwoFactorSecret, user_id)
    if user_2fa is not None:
        db.expire(user_2fa, ["last_used_step"])


def _consume_backup_code(db: Session, user_id: int, code: str) -> bool:
    """Mark a matching unused backup code as used. One caller wins a race."""
    code_hash = hash_backup_code(code)
    result = db.execute(
        update(TwoFactorBackupCode)
        .where(
            TwoFactorBackupCode.user_id == user_id,
            TwoFactorBackupCode.code_hash == code_hash,
            TwoFactorBackupCode.used_at.is_(None),
        )
        .values(used_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount >= 1:
        return True

    spent = (
        db.query(TwoFactorBackupCode.id)
        .filter(
            TwoFactorBackupCode.user_id == user_id,
            TwoFactorBackupCode.code_hash == code_hash,
        )
        .first()
    )
    if spent is not None:
        raise AlreadyUsed(message="This backup code has already been used")
    return False


def _secret_for(record: TwoFactorSecret) -> str | None:
    return decrypt_totp_secret(record.secret_encrypted)


def confirm_enrollment(db: Session, user: User, code: str) -> None:
    """Enable a staged secret after checking a code produced from it."""
    record = user.two_factor
    if record is None:
        raise ValidationFailed(message="Two-factor setup has not been started")
    if record.enabled:
        raise _already_enabled()

    secret = _secret_for(record)
    step = match_totp_step(secret, code) if secret else None
    if step is None:
        raise InvalidCode()

    record.enabled = True
    record.enabled_at = datetime.now(timezone.utc)
    record.last_used_step = step
    user.has_2fa_setup = True
    db.flush()


def verify_second_factor(db: Session, user: User, code: str) -> SecondFactorResult:
    """
    Check a second-factor code for a user with 2FA enabled.

    Six digits are tried as TOTP first; anything else (or a TOTP miss) is
    tried as a backup code. Used backup codes and TOTP steps are rejected
    with AlreadyUsed.
    """
    record = user.two_factor
    if record is None or not record.enabled:
        raise _not_enabled()

    code = (code or "").strip()
    if is_totp_format(code):
        secret = _secret_for(record)
        step = match_totp_step(secret, code) if secret else None
        if step is not None:
            _claim_totp_step(db, user.id, step)
            return SecondFactorResult(
                method=SecondFactorMethod.TOTP,
                backup_codes_remaining=count_unused_backup_codes(db, user.id),
            )

    if code and _consume_backup_code(db, user.id, code):
        remaining = count_unused_backup_codes(db, user.id)
        logger.info(
            "Backup code consumed",
            extra={"user_id": user.id, "backup_codes_remaining": remaining},
        )
        return SecondFactorResult(
            method=SecondFactorMethod.BACKUP_CODE,
            backup_codes_remaining=remaining,
        )

    raise InvalidCode()


def regenerate_backup_codes(db: Session, user: User, code: str) -> list[str]:
    """Issue a fresh backup code set after a TOTP check."""
    record = user.two_factor
    if record is None or not record.enabled:
        raise _not_enabled()

    secret = _secret_for(record)
    step = match_totp_step(secret, code) if secret else None
    if step is None:
        raise InvalidCode()
    _claim_totp_step(db, user.id, step)

    return replace_backup_codes(db, user)


def disable(db: Session, user: User, password: str) -> None:
    """Turn 2FA off after re-checking the password. Deletes secret and backup codes."""
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials(message="Incorrect password")
    if not user.two_factor_enabled:
        raise _not_enabled()

    db.query(TwoFactorBackupCode).filter(TwoFactorBackupCode.user_id == user.id).delete(
        synchronize_session=False
    )
    user.two_factor = None
    db.flush()
