"""Two-factor models (TOTP secret and backup codes)."""

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class TwoFactorSecret(Base):
    """Per-user TOTP configuration.

    A row with ``enabled=False`` is a staged enrollment that has not been
    confirmed with a code yet.
    """

    __tablename__ = "user_2fa"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    secret_encrypted = Column(String, nullable=False)  # Fernet token
    enabled = Column(Boolean, default=False, nullable=False)
    enabled_at = Column(DateTime(timezone=True), nullable=True)
    # Last TOTP time step accepted; a step is never accepted twice
    last_used_step = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="two_factor")


class TwoFactorBackupCode(Base):
    """Single-use backup code, stored as a peppered hash."""

    __tablename__ = "user_2fa_backup_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(String(64), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="backup_codes")
