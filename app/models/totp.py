"""TOTP (Time-based One-Time Password) models for 2FA."""

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base

if TYPE_CHECKING:
    from app.models.user import User


class TwoFactorStatus:
    """Persisted enrollment status values."""

    PENDING = "pending"
    ACTIVE = "active"


class TwoFactorSecret(Base):
    """TOTP secret for two-factor authentication (one row per user)."""

    __tablename__ = "two_factor_secrets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Fernet ciphertext of the Base32 secret
    encrypted_secret: Mapped[str] = mapped_column(String(512), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), default=TwoFactorStatus.PENDING, nullable=False, index=True
    )

    # Highest accepted time-step; codes at or below it are replays
    last_used_step: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    enabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="totp_secret")

    def __repr__(self) -> str:
        return f"<TwoFactorSecret user_id={self.user_id} status={self.status}>"


class BackupCode(Base):
    """Hashed single-use recovery code."""

    __tablename__ = "two_factor_backup_codes"
    __table_args__ = (UniqueConstraint("user_id", "code_hash", name="uq_backup_code_user_hash"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="backup_codes")

    def __repr__(self) -> str:
        return f"<BackupCode user_id={self.user_id} position={self.position} used={self.used}>"
