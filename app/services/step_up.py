"""Step-up authentication gate.

A session is fully authenticated only after the second factor was presented.
The gate decides whether that is required and verifies the factor; marking
the session as satisfied is the caller's job.
"""

from datetime import UTC, datetime
from uuid import UUID

from app.core.exceptions import InvalidCodeFormat
from app.core.logging_config import get_logger
from app.repositories.account_store import AccountStore, Active
from app.services.backup_codes import BackupCodeService
from app.services.enrollment import EnrollmentService, decrypt_secret
from app.services.totp import TOTPService

logger = get_logger(__name__)


class StepUpGate:
    """Second-factor checks for accounts with active TOTP."""

    def __init__(self, store: AccountStore, enrollment: EnrollmentService | None = None):
        self.store = store
        self.enrollment = enrollment or EnrollmentService(store)

    async def is_second_factor_required(self, user_id: UUID, now: datetime | None = None) -> bool:
        """True iff the account has an active two-factor enrollment."""
        state = await self.enrollment.get_state(user_id, now)
        return isinstance(state, Active)

    async def verify_second_factor(
        self,
        user_id: UUID,
        code: str,
        is_backup_code: bool = False,
        now: datetime | None = None,
    ) -> bool:
        """
        Verify a TOTP code or consume a backup code.

        Accounts that are not active, malformed codes, wrong codes, replayed
        time-steps and used backup codes all return False without saying why.

        Args:
            user_id: Account ID
            code: Submitted TOTP or backup code
            is_backup_code: Treat `code` as a backup code
            now: Verification time (defaults to current time)

        Returns:
            True if the second factor is satisfied
        """
        now = now or datetime.now(UTC)
        state = await self.enrollment.get_state(user_id, now)
        if not isinstance(state, Active):
            logger.info("step_up_rejected", user_id=str(user_id), reason="invalid_state")
            return False

        if is_backup_code:
            consumed = await BackupCodeService.consume(self.store, user_id, code, now)
            logger.info(
                "step_up_backup_code",
                user_id=str(user_id),
                success=consumed,
                remaining=state.backup_codes_remaining - (1 if consumed else 0),
            )
            return consumed

        try:
            step = TOTPService.match_step(decrypt_secret(state.encrypted_secret), code, now)
        except InvalidCodeFormat:
            logger.info("step_up_rejected", user_id=str(user_id), reason="bad_format")
            return False

        if step is None:
            logger.info("step_up_rejected", user_id=str(user_id), reason="wrong_code")
            return False

        if not await self.store.record_step(user_id, step, now):
            logger.warning("step_up_rejected", user_id=str(user_id), reason="replayed_step")
            return False

        logger.info("step_up_verified", user_id=str(user_id))
        return True
