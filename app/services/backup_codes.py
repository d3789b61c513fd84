"""Backup (recovery) codes for two-factor authentication."""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from app.core.config import settings
from app.core.encryption import encryption_service
from app.repositories.account_store import AccountStore

# No 0/O, 1/I, so codes survive being read aloud or written down
BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
BACKUP_CODE_LENGTH = 10
BACKUP_CODE_GROUP = 5


@dataclass(frozen=True)
class BackupCodeBatch:
    """Freshly generated codes: plaintext for the user, hashes for storage."""

    plaintext: list[str]
    hashes: list[str]


class BackupCodeService:
    """Generate, hash and consume single-use recovery codes."""

    @staticmethod
    def normalize(code: str | None) -> str:
        """Upper-case a code and drop separators and whitespace."""
        return "".join(ch for ch in (code or "").upper() if ch.isalnum())

    @staticmethod
    def format(raw_code: str) -> str:
        """Format a raw code for display, e.g. ABCDE-FGHJK."""
        normalized = BackupCodeService.normalize(raw_code)
        return f"{normalized[:BACKUP_CODE_GROUP]}-{normalized[BACKUP_CODE_GROUP:]}"

    @staticmethod
    def is_valid_format(code: str | None) -> bool:
        normalized = BackupCodeService.normalize(code)
        return len(normalized) == BACKUP_CODE_LENGTH and all(
            ch in BACKUP_CODE_ALPHABET for ch in normalized
        )

    @staticmethod
    def hash_code(code: str) -> str:
        """Keyed one-way hash of a normalized code."""
        return encryption_service.keyed_hash(BackupCodeService.normalize(code))

    @staticmethod
    def generate_backup_codes(count: int | None = None) -> BackupCodeBatch:
        """
        Generate backup codes for account recovery.

        Args:
            count: Number of codes, defaults to BACKUP_CODE_COUNT

        Returns:
            Plaintext codes (shown once) with their hashes in the same order
        """
        if count is None:
            count = settings.BACKUP_CODE_COUNT
        plaintext: list[str] = []
        seen: set[str] = set()
        while len(plaintext) < count:
            raw = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
            if raw in seen:
                continue
            seen.add(raw)
            plaintext.append(BackupCodeService.format(raw))

        return BackupCodeBatch(
            plaintext=plaintext,
            hashes=[BackupCodeService.hash_code(code) for code in plaintext],
        )

    @staticmethod
    async def consume(
        store: AccountStore, user_id: UUID, code: str, now: datetime | None = None
    ) -> bool:
        """
        Consume a backup code.

        The check and the mark-as-used happen in one conditional write, so two
        parallel requests presenting the same code cannot both succeed.

        Returns:
            True if an unused code matched and is now used; False otherwise
        """
        if not BackupCodeService.is_valid_format(code):
            return False

        return await store.mark_backup_code_used(
            user_id, BackupCodeService.hash_code(code), now or datetime.now(UTC)
        )
