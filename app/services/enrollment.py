"""Two-factor enrollment lifecycle.

States move Disabled -> PendingVerification -> Active and back to Disabled.
A pending enrollment that is never confirmed expires after
TWO_FACTOR_PENDING_TTL_MINUTES; expiry is applied lazily on the next read,
so abandoning the flow never requires a follow-up call.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from app.core.config import settings
from app.core.encryption import encryption_service
from app.core.exceptions import InvalidCodeFormat, InvalidState
from app.core.logging_config import get_logger
from app.repositories.account_store import (
    AccountStore,
    Active,
    Disabled,
    EnrollmentState,
    PendingVerification,
)
from app.services.backup_codes import BackupCodeService
from app.services.totp import TOTPService

logger = get_logger(__name__)


@dataclass(frozen=True)
class EnrollmentStart:
    """Material shown to the user once when enrollment begins."""

    provisioning_uri: str
    secret: str
    backup_codes: list[str]
    expires_at: datetime


@dataclass(frozen=True)
class EnrollmentStatus:
    """Summary of a user's two-factor state for settings pages."""

    enabled: bool
    pending: bool
    enabled_at: datetime | None = None
    last_used_at: datetime | None = None
    pending_expires_at: datetime | None = None
    backup_codes_remaining: int = 0


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def decrypt_secret(encrypted_secret: str) -> bytes:
    """Decrypt a stored secret back to raw bytes.

    Raises:
        InvalidSecret: If the ciphertext or the decoded secret is corrupt
    """
    return TOTPService.decode_secret(encryption_service.decrypt(encrypted_secret))


class EnrollmentService:
    """State machine for enabling and disabling TOTP on an account."""

    def __init__(self, store: AccountStore):
        self.store = store

    @property
    def pending_ttl(self) -> timedelta:
        return timedelta(minutes=settings.TWO_FACTOR_PENDING_TTL_MINUTES)

    async def get_state(self, user_id: UUID, now: datetime | None = None) -> EnrollmentState:
        """
        Get the enrollment state, discarding an expired pending enrollment.

        Args:
            user_id: Account ID
            now: Evaluation time (defaults to current time)

        Returns:
            Disabled, PendingVerification or Active
        """
        now = _now(now)
        state = await self.store.get_enrollment_state(user_id)

        if isinstance(state, PendingVerification) and now - state.created_at > self.pending_ttl:
            await self.store.discard_pending_enrollment(user_id, older_than=now - self.pending_ttl)
            logger.info("two_factor_pending_expired", user_id=str(user_id))
            return Disabled()

        return state

    async def begin_enrollment(
        self,
        user_id: UUID,
        account_label: str | None = None,
        now: datetime | None = None,
    ) -> EnrollmentStart:
        """
        Start (or restart) enrollment with a new secret and backup codes.

        Args:
            user_id: Account ID
            account_label: Label for the authenticator app, defaults to the user's email
            now: Creation time (defaults to current time)

        Returns:
            Provisioning URI, Base32 secret and plaintext backup codes

        Raises:
            InvalidState: If two-factor authentication is already active
        """
        now = _now(now)
        state = await self.get_state(user_id, now)
        if isinstance(state, Active):
            raise InvalidState()

        if account_label is None:
            user = await self.store.get_user(user_id)
            if user is None:
                raise InvalidState()
            account_label = user.email

        secret = TOTPService.generate_secret()
        encoded_secret = TOTPService.encode_secret(secret)
        batch = BackupCodeService.generate_backup_codes()

        await self.store.write_pending_enrollment(
            user_id,
            encryption_service.encrypt(encoded_secret),
            batch.hashes,
            now,
        )

        logger.info(
            "two_factor_enrollment_started",
            user_id=str(user_id),
            restarted=isinstance(state, PendingVerification),
        )

        return EnrollmentStart(
            provisioning_uri=TOTPService.provisioning_uri(secret, account_label),
            secret=encoded_secret,
            backup_codes=batch.plaintext,
            expires_at=now + self.pending_ttl,
        )

    async def confirm_enrollment(
        self, user_id: UUID, code: str, now: datetime | None = None
    ) -> bool:
        """
        Confirm a pending enrollment with a code from the authenticator app.

        On success the secret and backup codes become durable and
        `two_factor_enabled` is set. On failure the enrollment stays pending.

        Returns:
            True if this call activated two-factor authentication
        """
        now = _now(now)
        state = await self.get_state(user_id, now)
        if not isinstance(state, PendingVerification):
            logger.info("two_factor_confirm_rejected", user_id=str(user_id), reason="not_pending")
            return False

        secret = decrypt_secret(state.encrypted_secret)
        try:
            step = TOTPService.match_step(secret, code, now)
        except InvalidCodeFormat:
            logger.info("two_factor_confirm_rejected", user_id=str(user_id), reason="bad_format")
            return False

        if step is None:
            logger.info("two_factor_confirm_rejected", user_id=str(user_id), reason="wrong_code")
            return False

        if not await self.store.commit_enrollment(user_id, step, now):
            # Another request confirmed (or cancelled) first
            logger.info("two_factor_confirm_rejected", user_id=str(user_id), reason="stale_state")
            return False

        logger.info("two_factor_enabled", user_id=str(user_id))
        return True

    async def cancel_enrollment(self, user_id: UUID) -> bool:
        """Abandon a pending enrollment. Returns True if one was discarded."""
        discarded = await self.store.discard_pending_enrollment(user_id)
        if discarded:
            logger.info("two_factor_enrollment_cancelled", user_id=str(user_id))
        return discarded

    async def disable(self, user_id: UUID, now: datetime | None = None) -> bool:
        """
        Disable two-factor authentication.

        Deletes the secret and all backup codes and clears the enabled flag.
        Idempotent: disabling a disabled account succeeds, and a pending
        enrollment is discarded as well.
        """
        state = await self.get_state(user_id, now)
        await self.store.clear_enrollment(user_id)
        logger.info(
            "two_factor_disabled",
            user_id=str(user_id),
            previous_state=type(state).__name__,
        )
        return True

    async def regenerate_backup_codes(self, user_id: UUID, now: datetime | None = None) -> list[str]:
        """
        Replace all backup codes of an active enrollment.

        Returns:
            New plaintext codes (shown once)

        Raises:
            InvalidState: If two-factor authentication is not active
        """
        state = await self.get_state(user_id, now)
        if not isinstance(state, Active):
            raise InvalidState()

        batch = BackupCodeService.generate_backup_codes()
        if not await self.store.replace_backup_codes(user_id, batch.hashes):
            raise InvalidState()

        logger.info("two_factor_backup_codes_regenerated", user_id=str(user_id))
        return batch.plaintext

    async def status(self, user_id: UUID, now: datetime | None = None) -> EnrollmentStatus:
        """Summarize the enrollment for display."""
        state = await self.get_state(user_id, now)

        if isinstance(state, Active):
            return EnrollmentStatus(
                enabled=True,
                pending=False,
                enabled_at=state.enabled_at,
                last_used_at=state.last_used_at,
                backup_codes_remaining=state.backup_codes_remaining,
            )

        if isinstance(state, PendingVerification):
            return EnrollmentStatus(
                enabled=False,
                pending=True,
                pending_expires_at=state.created_at + self.pending_ttl,
            )

        return EnrollmentStatus(enabled=False, pending=False)
