"""Base database model and imports."""

from app.db.session import Base

# Import all models here so metadata.create_all sees them
from app.models.expense import Expense
from app.models.totp import BackupCode, TwoFactorSecret
from app.models.user import User

__all__ = [
    "BackupCode",
    "Base",
    "Expense",
    "TwoFactorSecret",
    "User",
]
