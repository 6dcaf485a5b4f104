"""Two-factor schemas."""

from pydantic import Field, field_validator

from app.schemas.auth import UserResponse
from app.schemas.common import CamelModel

# TOTP is 6 digits, backup codes XXXX-XXXX; allow some formatting slack
CODE_MAX_LENGTH = 20


def _strip_code(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Code is required")
    return v


class CodeRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=CODE_MAX_LENGTH)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return _strip_code(v)


class PendingCodeRequest(CodeRequest):
    """Second step of login or registration: the pending user plus a code."""

    user_id: int = Field(..., gt=0)


class PendingSetupRequest(CamelModel):
    user_id: int = Field(..., gt=0)


class DisableRequest(CamelModel):
    password: str = Field(..., min_length=1, max_length=256)


class SetupResponse(CamelModel):
    secret: str
    qr_code: str
    provisioning_uri: str
    backup_codes: list[str]
    recovery_code: str | None = None


class BackupCodesResponse(CamelModel):
    backup_codes: list[str]


class VerifyResponse(CamelModel):
    user: UserResponse
    used_backup_code: bool = False
    backup_codes_remaining: int
