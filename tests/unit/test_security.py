"""Tests for security utilities."""

from datetime import timedelta

import pytest
from jose import jwt

from app.core.config import settings
from app.core.encryption import EncryptionService
from app.core.exceptions import InvalidSecret
from app.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    validate_password_strength,
    verify_password,
)


def test_password_hashing():
    """Test password hashing and verification."""
    password = "TestPassword123"
    hashed = get_password_hash(password)

    assert hashed != password
    assert hashed.startswith("$argon2")
    assert verify_password(password, hashed)
    assert not verify_password("wrong_password", hashed)


def test_token_creation_and_verification():
    """Test JWT token creation and verification."""
    user_id = "12345"
    token = create_access_token(user_id)

    assert isinstance(token, str)
    claims = decode_access_token(token)
    assert claims is not None and claims.subject == user_id


def test_token_carries_step_up_flag():
    plain = decode_access_token(create_access_token("user-1"))
    stepped_up = decode_access_token(create_access_token("user-1", two_factor_verified=True))

    assert plain is not None and plain.two_factor_verified is False
    assert stepped_up is not None and stepped_up.two_factor_verified is True


def test_expired_token_is_rejected():
    token = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
    assert decode_access_token(token) is None


def test_token_signed_with_other_key_is_rejected():
    token = jwt.encode(
        {"sub": "user-1", "type": "access", "tfa": True},
        "some-other-signing-key-that-is-long-enough",
        algorithm=settings.ALGORITHM,
    )
    assert decode_access_token(token) is None


def test_non_access_token_is_rejected():
    token = jwt.encode(
        {"sub": "user-1", "type": "refresh"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )
    assert decode_access_token(token) is None


def test_invalid_token_verification():
    """Test verification of invalid token."""
    assert decode_access_token("invalid.token.here") is None


@pytest.mark.parametrize(
    ("password", "expected_valid"),
    [
        ("Test1234", True),
        ("weak1", False),  # Too short
        ("NoDigitsHere", False),
        ("1234567890", False),  # No letters
    ],
)
def test_password_strength_validation(password: str, expected_valid: bool):
    """Test password strength validation."""
    is_valid, _ = validate_password_strength(password)
    assert is_valid == expected_valid


class TestEncryptionService:
    """Fernet encryption of stored TOTP secrets."""

    def test_encrypt_decrypt(self):
        service = EncryptionService()
        ciphertext = service.encrypt("JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP")

        assert ciphertext != "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
        assert service.decrypt(ciphertext) == "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"

    def test_encryption_is_randomized(self):
        service = EncryptionService()
        assert service.encrypt("secret") != service.encrypt("secret")

    def test_decrypt_with_other_key_raises(self):
        ciphertext = EncryptionService().encrypt("secret")
        other = EncryptionService("another-secret-key-of-sufficient-length")

        with pytest.raises(InvalidSecret):
            other.decrypt(ciphertext)

    def test_keyed_hash_is_stable(self):
        service = EncryptionService()
        assert service.keyed_hash("ABCDEFGHJK") == service.keyed_hash("ABCDEFGHJK")
        assert service.keyed_hash("ABCDEFGHJK") != service.keyed_hash("ABCDEFGHJL")
