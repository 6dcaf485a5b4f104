"""Password recovery schemas."""

from pydantic import EmailStr, Field, field_validator

from app.schemas.common import CamelModel, check_password_strength


class RecoveryVerifyEmailRequest(CamelModel):
    email: EmailStr
    recovery_code: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class RecoveryVerifyEmailResponse(CamelModel):
    user_id: int
    username: str
    email: str  # masked
    recovery_code_hint: str


class RecoverPasswordRequest(CamelModel):
    recovery_code: str = Field(..., min_length=1, max_length=128)
    two_factor_code: str = Field(..., min_length=1, max_length=20)
    new_password: str

    @field_validator("two_factor_code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class RecoverPasswordResponse(CamelModel):
    status: str = "ok"
    message: str
    new_recovery_code: str
    used_backup_code: bool
    backup_codes_remaining: int
