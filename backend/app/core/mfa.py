"""MFA primitives: TOTP secrets, backup codes, recovery codes and QR images."""

import base64
import re
import secrets
import time
from io import BytesIO

import pyotp
import qrcode
from cryptography.fernet import Fernet, InvalidToken
from pyotp.utils import strings_equal

from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import hash_token

logger = get_logger(__name__)

TOTP_SECRET_LENGTH = 32
TOTP_CODE_PATTERN = re.compile(r"^\d{6}$")
RECOVERY_CODE_PATTERN = re.compile(r"^[0-9a-f]{64}$")
RECOVERY_HINT_CHARS = 8
RECOVERY_MASK = "•" * 48

# Fernet cipher for encrypting TOTP secrets
_fernet: Fernet | None = None


def get_fernet() -> Fernet:
    """Get Fernet cipher instance."""
    global _fernet
    if _fernet is None:
        if not settings.MFA_ENCRYPTION_KEY:
            raise ValueError("MFA_ENCRYPTION_KEY must be set")
        _fernet = Fernet(settings.MFA_ENCRYPTION_KEY.encode())
    return _fernet


def encrypt_totp_secret(secret: str) -> str:
    return get_fernet().encrypt(secret.encode()).decode()


def decrypt_totp_secret(encrypted_secret: str) -> str | None:
    """Decrypt a stored TOTP secret; None if the ciphertext cannot be read."""
    try:
        return get_fernet().decrypt(encrypted_secret.encode()).decode()
    except InvalidToken:
        logger.error("Stored TOTP secret could not be decrypted")
        return None


def generate_totp_secret() -> str:
    """Generate a new base32 TOTP secret."""
    return pyotp.random_base32(length=TOTP_SECRET_LENGTH)


def generate_totp_provisioning_uri(secret: str, account_name: str) -> str:
    """Generate the otpauth:// URI an authenticator app scans."""
    return pyotp.TOTP(secret).provisioning_uri(
        name=account_name,
        issuer_name=settings.MFA_TOTP_ISSUER,
    )


def qr_code_data_url(data: str) -> str:
    """Render data as a PNG QR code and return it as a data URL."""
    image = qrcode.make(data)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"


def is_totp_format(code: str) -> bool:
    return bool(TOTP_CODE_PATTERN.match(code or ""))


def match_totp_step(
    secret: str,
    code: str,
    window: int | None = None,
    for_time: float | None = None,
) -> int | None:
    """
    Find the time step a TOTP code belongs to.

    Checks steps t-window .. t+window with a constant-time comparison and
    returns the matching step counter, or None when nothing matches.
    """
    code = (code or "").strip()
    if not is_totp_format(code):
        return None
    if window is None:
        window = settings.MFA_TOTP_WINDOW
    now = time.time() if for_time is None else for_time

    totp = pyotp.TOTP(secret)
    current_step = int(now) // totp.interval
    for step in range(current_step - window, current_step + window + 1):
        if step >= 0 and strings_equal(code, totp.generate_otp(step)):
            return step
    return None


def normalize_backup_code(code: str) -> str:
    """Upper-case and drop whitespace and dashes so formatting never matters."""
    return re.sub(r"[\s-]", "", code or "").upper()


def generate_backup_codes(count: int | None = None) -> list[str]:
    """Generate XXXX-XXXX upper-case hex backup codes."""
    if count is None:
        count = settings.MFA_BACKUP_CODES_COUNT
    codes: list[str] = []
    while len(codes) < count:
        raw = secrets.token_hex(4).upper()
        code = f"{raw[:4]}-{raw[4:]}"
        if code not in codes:
            codes.append(code)
    return codes


def hash_backup_code(code: str) -> str:
    """Hash a backup code for storage."""
    return hash_token(normalize_backup_code(code))


def generate_recovery_code() -> str:
    """64 lower-case hex characters."""
    return secrets.token_hex(32)


def normalize_recovery_code(code: str) -> str:
    return (code or "").strip().lower()


def is_recovery_code_format(code: str) -> bool:
    return bool(RECOVERY_CODE_PATTERN.match(normalize_recovery_code(code)))


def hash_recovery_code(code: str) -> str:
    return hash_token(normalize_recovery_code(code))


def recovery_code_hint(code: str) -> str:
    """First and last characters of a recovery code, kept for display."""
    code = normalize_recovery_code(code)
    return code[:RECOVERY_HINT_CHARS] + code[-RECOVERY_HINT_CHARS:]


def mask_recovery_hint(hint: str) -> str:
    """Expand a stored hint into the masked form shown to the user."""
    return hint[:RECOVERY_HINT_CHARS] + RECOVERY_MASK + hint[-RECOVERY_HINT_CHARS:]


def mask_email(email: str) -> str:
    """a****e@example.com style masking."""
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        masked_local = local[:1] + "*" * max(len(local) - 1, 1)
    else:
        masked_local = local[0] + "*" * (len(local) - 2) + local[-1]
    return f"{masked_local}@{domain}"
