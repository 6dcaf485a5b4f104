"""Authentication schemas."""

from datetime import datetime

from pydantic import EmailStr, Field, field_validator, model_validator

from app.schemas.common import CamelModel, check_password_strength


# Request schemas
class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=256)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirmation do not match")
        if self.new_password == self.current_password:
            raise ValueError("New password must differ from the current password")
        return self


# Response schemas
class UserResponse(CamelModel):
    """Public view of the signed-in user."""

    id: int
    username: str
    email: str
    display_name: str | None = None
    avatar_url: str | None = None
    role: str
    roles: list[str]
    is_admin: bool
    is_moderator: bool
    two_factor_enabled: bool
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            role=user.role,
            roles=user.roles,
            is_admin=user.is_admin,
            is_moderator=user.is_moderator,
            two_factor_enabled=user.two_factor_enabled,
            created_at=user.created_at,
        )


class LoginResponse(CamelModel):
    """Result of the password step.

    requires2FA: verify a code next. requiresSetup: enroll first.
    Otherwise ``user`` is set and the session cookie was issued.
    """

    requires_2fa: bool = Field(default=False, alias="requires2FA")
    requires_setup: bool | None = None
    user_id: int | None = None
    user: UserResponse | None = None


class TwoFactorSetupPayload(CamelModel):
    secret: str
    qr_code: str
    backup_codes: list[str]
    recovery_code: str | None = None


class RegisterResponse(CamelModel):
    user: UserResponse
    two_factor_setup: TwoFactorSetupPayload
    next_step: str = "verify-2fa"


class SessionResponse(CamelModel):
    user: UserResponse
