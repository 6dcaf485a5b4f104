"""User model."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class UserRole(str, Enum):
    """User role enum."""

    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class User(Base):
    """User model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    display_name = Column(String(100), nullable=True)
    avatar_url = Column(String, nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete
    has_2fa_setup = Column(Boolean, default=False, nullable=False)
    two_factor_exempt = Column(Boolean, default=False, nullable=False)  # legacy accounts
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=func.now(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    two_factor = relationship(
        "TwoFactorSecret", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    backup_codes = relationship(
        "TwoFactorBackupCode", back_populates="user", cascade="all, delete-orphan"
    )
    recovery_code = relationship(
        "RecoveryCode", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_moderator(self) -> bool:
        return self.role in (UserRole.MODERATOR.value, UserRole.ADMIN.value)

    @property
    def roles(self) -> list[str]:
        """Role names granted to the user, most privileged last."""
        granted = [UserRole.USER.value]
        if self.is_moderator:
            granted.append(UserRole.MODERATOR.value)
        if self.is_admin:
            granted.append(UserRole.ADMIN.value)
        return granted

    @property
    def two_factor_enabled(self) -> bool:
        return self.two_factor is not None and bool(self.two_factor.enabled)

    @property
    def can_authenticate(self) -> bool:
        return bool(self.is_active) and self.deleted_at is None
