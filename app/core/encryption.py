"""Encryption service for sensitive data using Fernet (symmetric encryption)."""

import base64
import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken

from app.core.config import settings
from app.core.exceptions import InvalidSecret


class EncryptionService:
    """Service for encrypting and decrypting sensitive data."""

    def __init__(self, secret_key: str | None = None):
        """Initialize encryption service with key from settings."""
        material = (secret_key or settings.SECRET_KEY).encode()
        # Fernet requires a 32-byte urlsafe base64-encoded key
        key = base64.urlsafe_b64encode(hashlib.sha256(material).digest())
        self.cipher = Fernet(key)
        self._hmac_key = hashlib.sha256(b"backup-codes:" + material).digest()

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt plaintext string.

        Args:
            plaintext: String to encrypt

        Returns:
            Base64-encoded encrypted string
        """
        if not plaintext:
            return plaintext

        encrypted_bytes = self.cipher.encrypt(plaintext.encode())
        return encrypted_bytes.decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt ciphertext string.

        Args:
            ciphertext: Base64-encoded encrypted string

        Returns:
            Decrypted plaintext string

        Raises:
            InvalidSecret: If the ciphertext was tampered with or the key changed
        """
        if not ciphertext:
            return ciphertext

        try:
            decrypted_bytes = self.cipher.decrypt(ciphertext.encode())
        except InvalidToken as e:
            raise InvalidSecret("Stored secret could not be decrypted") from e
        return decrypted_bytes.decode()

    def keyed_hash(self, token: str) -> str:
        """
        Create a keyed hash (HMAC-SHA256) of a token for storage.

        Used for values that must be looked up by hash (backup codes) but
        should not be recoverable or brute-forceable offline from a DB dump.

        Args:
            token: Token to hash

        Returns:
            HMAC-SHA256 of the token (hex format)
        """
        return hmac.new(self._hmac_key, token.encode(), hashlib.sha256).hexdigest()


# Global encryption service instance
encryption_service = EncryptionService()
