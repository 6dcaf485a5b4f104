"""Recovery code model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class RecoveryCode(Base):
    """Long-lived code that lets a user reset a forgotten password."""

    __tablename__ = "recovery_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    code_hash = Column(String(64), nullable=False, unique=True, index=True)
    code_hint = Column(String(16), nullable=False)  # first 8 + last 8 characters
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_regenerated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="recovery_code")
