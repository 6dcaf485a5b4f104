"""Database models."""

from app.models.audit import AuditLog
from app.models.content import ContentKind, ContentRef
from app.models.recovery import RecoveryCode
from app.models.two_factor import TwoFactorBackupCode, TwoFactorSecret
from app.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "TwoFactorSecret",
    "TwoFactorBackupCode",
    "RecoveryCode",
    "AuditLog",
    "ContentKind",
    "ContentRef",
]
