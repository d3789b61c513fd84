"""Account store: the persistence seam of the two-factor core.

The enrollment state machine and the step-up gate only talk to an
`AccountStore`. It is the single source of truth for per-user enrollment
state and the serialization point for concurrent requests: every transition
that must happen at most once is a conditional write whose boolean result
tells the caller whether it won.
"""

import abc
import functools
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ParamSpec, TypeVar
from uuid import UUID

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidState, StoreUnavailable
from app.core.logging_config import get_logger
from app.models.totp import BackupCode, TwoFactorSecret, TwoFactorStatus
from app.models.user import User

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


@dataclass(frozen=True)
class StoredBackupCode:
    """A persisted backup code hash and whether it was consumed."""

    code_hash: str
    used: bool = False


@dataclass(frozen=True)
class Disabled:
    """No secret stored for the user."""


@dataclass(frozen=True)
class PendingVerification:
    """Secret generated but not yet confirmed with a valid code."""

    encrypted_secret: str
    created_at: datetime
    backup_hashes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Active:
    """Secret confirmed; the account is challenged for a second factor."""

    encrypted_secret: str
    backup_codes: tuple[StoredBackupCode, ...] = ()
    enabled_at: datetime | None = None
    last_used_at: datetime | None = None
    last_used_step: int | None = None

    @property
    def backup_codes_remaining(self) -> int:
        return sum(1 for code in self.backup_codes if not code.used)


EnrollmentState = Disabled | PendingVerification | Active


class AccountStore(abc.ABC):
    """Persistence operations consumed by the two-factor core."""

    @abc.abstractmethod
    async def get_user(self, user_id: UUID) -> User | None:
        """Get the account by ID."""

    @abc.abstractmethod
    async def get_enrollment_state(self, user_id: UUID) -> EnrollmentState:
        """Read the current enrollment state for a user."""

    @abc.abstractmethod
    async def write_pending_enrollment(
        self,
        user_id: UUID,
        encrypted_secret: str,
        backup_hashes: Sequence[str],
        created_at: datetime,
    ) -> None:
        """Store a new pending enrollment, replacing any previous pending one.

        Raises:
            InvalidState: If the user already has an active enrollment
        """

    @abc.abstractmethod
    async def commit_enrollment(self, user_id: UUID, step: int, now: datetime) -> bool:
        """Atomically move pending to active and set `two_factor_enabled`.

        Returns False when the enrollment is no longer pending.
        """

    @abc.abstractmethod
    async def discard_pending_enrollment(
        self, user_id: UUID, older_than: datetime | None = None
    ) -> bool:
        """Delete a pending enrollment (optionally only one created before `older_than`)."""

    @abc.abstractmethod
    async def clear_enrollment(self, user_id: UUID) -> None:
        """Delete secret and backup codes and clear `two_factor_enabled`."""

    @abc.abstractmethod
    async def mark_backup_code_used(self, user_id: UUID, code_hash: str, now: datetime) -> bool:
        """Mark an unused backup code of an active enrollment as used.

        Returns False if the code is absent, already used or not yet consumable.
        """

    @abc.abstractmethod
    async def record_step(self, user_id: UUID, step: int, now: datetime) -> bool:
        """Record an accepted time-step; False if it (or a later one) was already used."""

    @abc.abstractmethod
    async def replace_backup_codes(self, user_id: UUID, backup_hashes: Sequence[str]) -> bool:
        """Replace the backup code batch of an active enrollment."""


def store_errors(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Translate database failures into StoreUnavailable."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(
                "account_store_error",
                operation=func.__name__,
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise StoreUnavailable(type(e).__name__) from e

    return wrapper


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from databases without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SQLAlchemyAccountStore(AccountStore):
    """Account store backed by the application database.

    Writes are flushed but not committed; the request handler owns the
    transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @store_errors
    async def get_user(self, user_id: UUID) -> User | None:
        result = await self.db.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @store_errors
    async def get_enrollment_state(self, user_id: UUID) -> EnrollmentState:
        result = await self.db.execute(
            select(TwoFactorSecret)
            .where(TwoFactorSecret.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        secret = result.scalar_one_or_none()
        if secret is None:
            return Disabled()

        codes_result = await self.db.execute(
            select(BackupCode)
            .where(BackupCode.user_id == user_id)
            .order_by(BackupCode.position)
            .execution_options(populate_existing=True)
        )
        codes = codes_result.scalars().all()

        if secret.status == TwoFactorStatus.PENDING:
            return PendingVerification(
                encrypted_secret=secret.encrypted_secret,
                created_at=as_utc(secret.created_at),
                backup_hashes=tuple(code.code_hash for code in codes),
            )

        return Active(
            encrypted_secret=secret.encrypted_secret,
            backup_codes=tuple(StoredBackupCode(code.code_hash, code.used) for code in codes),
            enabled_at=as_utc(secret.enabled_at),
            last_used_at=as_utc(secret.last_used_at),
            last_used_step=secret.last_used_step,
        )

    @store_errors
    async def write_pending_enrollment(
        self,
        user_id: UUID,
        encrypted_secret: str,
        backup_hashes: Sequence[str],
        created_at: datetime,
    ) -> None:
        result = await self.db.execute(
            select(TwoFactorSecret.status)
            .where(TwoFactorSecret.user_id == user_id)
            .with_for_update()
        )
        current_status = result.scalar_one_or_none()
        if current_status == TwoFactorStatus.ACTIVE:
            raise InvalidState()

        if current_status is not None:
            await self._delete_enrollment_rows(user_id)

        self.db.add(
            TwoFactorSecret(
                user_id=user_id,
                encrypted_secret=encrypted_secret,
                status=TwoFactorStatus.PENDING,
                created_at=created_at,
            )
        )
        self._add_backup_codes(user_id, backup_hashes)
        await self.db.flush()

    @store_errors
    async def commit_enrollment(self, user_id: UUID, step: int, now: datetime) -> bool:
        result = await self.db.execute(
            update(TwoFactorSecret)
            .where(
                TwoFactorSecret.user_id == user_id,
                TwoFactorSecret.status == TwoFactorStatus.PENDING,
            )
            .values(
                status=TwoFactorStatus.ACTIVE,
                enabled_at=now,
                last_used_at=now,
                last_used_step=step,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(two_factor_enabled=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return True

    @store_errors
    async def discard_pending_enrollment(
        self, user_id: UUID, older_than: datetime | None = None
    ) -> bool:
        stmt = delete(TwoFactorSecret).where(
            TwoFactorSecret.user_id == user_id,
            TwoFactorSecret.status == TwoFactorStatus.PENDING,
        )
        if older_than is not None:
            stmt = stmt.where(TwoFactorSecret.created_at < older_than)

        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            return False

        # Pending backup codes only exist alongside the pending secret
        await self.db.execute(
            delete(BackupCode)
            .where(BackupCode.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return True

    @store_errors
    async def clear_enrollment(self, user_id: UUID) -> None:
        await self._delete_enrollment_rows(user_id)
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(two_factor_enabled=False)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

    @store_errors
    async def mark_backup_code_used(self, user_id: UUID, code_hash: str, now: datetime) -> bool:
        enrollment_active = exists().where(
            TwoFactorSecret.user_id == user_id,
            TwoFactorSecret.status == TwoFactorStatus.ACTIVE,
        )
        result = await self.db.execute(
            update(BackupCode)
            .where(
                BackupCode.user_id == user_id,
                BackupCode.code_hash == code_hash,
                BackupCode.used.is_(False),
                enrollment_active,
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await self.db.execute(
            update(TwoFactorSecret)
            .where(TwoFactorSecret.user_id == user_id)
            .values(last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return True

    @store_errors
    async def record_step(self, user_id: UUID, step: int, now: datetime) -> bool:
        result = await self.db.execute(
            update(TwoFactorSecret)
            .where(
                TwoFactorSecret.user_id == user_id,
                TwoFactorSecret.status == TwoFactorStatus.ACTIVE,
                (TwoFactorSecret.last_used_step.is_(None))
                | (TwoFactorSecret.last_used_step < step),
            )
            .values(last_used_step=step, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount == 1

    @store_errors
    async def replace_backup_codes(self, user_id: UUID, backup_hashes: Sequence[str]) -> bool:
        result = await self.db.execute(
            select(TwoFactorSecret.id)
            .where(
                TwoFactorSecret.user_id == user_id,
                TwoFactorSecret.status == TwoFactorStatus.ACTIVE,
            )
            .with_for_update()
        )
        if result.scalar_one_or_none() is None:
            return False

        await self.db.execute(
            delete(BackupCode)
            .where(BackupCode.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        self._add_backup_codes(user_id, backup_hashes)
        await self.db.flush()
        return True

    async def _delete_enrollment_rows(self, user_id: UUID) -> None:
        await self.db.execute(
            delete(BackupCode)
            .where(BackupCode.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(TwoFactorSecret)
            .where(TwoFactorSecret.user_id == user_id)
            .execution_options(synchronize_session=False)
        )

    def _add_backup_codes(self, user_id: UUID, backup_hashes: Sequence[str]) -> None:
        self.db.add_all(
            BackupCode(user_id=user_id, code_hash=code_hash, position=position)
            for position, code_hash in enumerate(backup_hashes)
        )
