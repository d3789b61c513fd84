"""Database models."""

# Import all models here to ensure SQLAlchemy can establish relationships
# This must be done before any database operations
from app.models.expense import Expense
from app.models.totp import BackupCode, TwoFactorSecret, TwoFactorStatus
from app.models.user import User

__all__ = [
    "BackupCode",
    "Expense",
    "TwoFactorSecret",
    "TwoFactorStatus",
    "User",
]
