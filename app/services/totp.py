"""TOTP codec for two-factor authentication.

Secrets are raw bytes inside the service layer and unpadded Base32 at the
edges (provisioning URI, display, encrypted storage).
"""

import base64
import binascii
import hmac
import io
from datetime import UTC, datetime
from urllib.parse import quote, urlencode

import pyotp
import qrcode

from app.core.config import settings
from app.core.exceptions import InvalidCodeFormat, InvalidSecret

# 160 bits, the RFC 4226 recommended minimum
SECRET_BYTES = 20


class TOTPService:
    """Secret generation, provisioning and code verification for TOTP."""

    @staticmethod
    def generate_secret() -> bytes:
        """Generate a new random TOTP secret."""
        # 32 Base32 characters carry exactly SECRET_BYTES bytes
        return base64.b32decode(pyotp.random_base32(length=SECRET_BYTES * 8 // 5))

    @staticmethod
    def encode_secret(secret: bytes) -> str:
        """Encode raw secret bytes as unpadded Base32."""
        TOTPService.validate_secret(secret)
        return base64.b32encode(secret).decode().rstrip("=")

    @staticmethod
    def decode_secret(encoded: str) -> bytes:
        """
        Decode a Base32 secret.

        Lowercase input, embedded spaces and missing padding are accepted.

        Raises:
            InvalidSecret: If the value is not Base32 or decodes to too few bytes
        """
        cleaned = "".join((encoded or "").split()).upper().rstrip("=")
        padding = "=" * ((8 - len(cleaned) % 8) % 8)
        try:
            secret = base64.b32decode(cleaned + padding)
        except (binascii.Error, ValueError) as e:
            raise InvalidSecret("Secret is not valid Base32") from e
        TOTPService.validate_secret(secret)
        return secret

    @staticmethod
    def validate_secret(secret: bytes) -> None:
        """Raise InvalidSecret unless secret is bytes of at least SECRET_BYTES length."""
        if not isinstance(secret, bytes) or len(secret) < SECRET_BYTES:
            raise InvalidSecret(f"Secret must be at least {SECRET_BYTES} bytes")

    @staticmethod
    def provisioning_uri(secret: bytes, account_label: str, issuer: str | None = None) -> str:
        """
        Build the otpauth:// provisioning URI for authenticator apps.

        Args:
            secret: Raw secret bytes
            account_label: Account name shown in the app (usually the email)
            issuer: Issuer name, defaults to the configured TOTP issuer

        Returns:
            TOTP URI string including issuer, digits and period
        """
        issuer = (issuer or settings.totp_issuer).strip()
        label = f"{quote(issuer)}:{quote(account_label.strip())}"
        params = urlencode(
            {
                "secret": TOTPService.encode_secret(secret),
                "issuer": issuer,
                "algorithm": "SHA1",
                "digits": settings.TOTP_DIGITS,
                "period": settings.TOTP_PERIOD_SECONDS,
            },
            quote_via=quote,
        )
        return f"otpauth://totp/{label}?{params}"

    @staticmethod
    def generate_qr_code(uri: str) -> str:
        """
        Generate QR code image as base64 string.

        Args:
            uri: TOTP provisioning URI

        Returns:
            Base64-encoded PNG data URL
        """
        qr = qrcode.QRCode(version=1, box_size=10, border=5)
        qr.add_data(uri)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        img_base64 = base64.b64encode(buffer.getvalue()).decode()

        return f"data:image/png;base64,{img_base64}"

    @staticmethod
    def time_step(now: datetime | None = None) -> int:
        """Return the time-step index floor(unix_time / period) for now."""
        now = now or datetime.now(UTC)
        return int(now.timestamp()) // settings.TOTP_PERIOD_SECONDS

    @staticmethod
    def compute_code(secret: bytes, step: int) -> str:
        """Compute the HOTP code for a time-step counter."""
        hotp = pyotp.HOTP(TOTPService.encode_secret(secret), digits=settings.TOTP_DIGITS)
        return hotp.at(step)

    @staticmethod
    def normalize_code(code: str | None) -> str:
        """
        Strip whitespace from a submitted code and check its shape.

        Raises:
            InvalidCodeFormat: If the code is not exactly TOTP_DIGITS ASCII digits
        """
        normalized = "".join((code or "").split())
        if len(normalized) != settings.TOTP_DIGITS or not (
            normalized.isascii() and normalized.isdigit()
        ):
            raise InvalidCodeFormat()
        return normalized

    @staticmethod
    def match_step(secret: bytes, code: str, now: datetime | None = None) -> int | None:
        """
        Find the time-step a code belongs to within the allowed skew window.

        Every candidate is compared in constant time and the loop never exits
        early, so timing does not reveal which step matched.

        Returns:
            The matching step index, or None if the code is wrong
        """
        normalized = TOTPService.normalize_code(code)
        TOTPService.validate_secret(secret)

        current = TOTPService.time_step(now)
        window = settings.TOTP_VALID_WINDOW
        matched: int | None = None
        for step in range(current - window, current + window + 1):
            candidate = TOTPService.compute_code(secret, step)
            if hmac.compare_digest(candidate.encode(), normalized.encode()) and matched is None:
                matched = step
        return matched

    @staticmethod
    def verify_code(secret: bytes, code: str, now: datetime | None = None) -> bool:
        """
        Verify a TOTP code allowing one step of clock skew either way.

        Args:
            secret: Raw secret bytes
            code: Submitted 6-digit code
            now: Verification time (defaults to current time)

        Returns:
            True if the code matches the previous, current or next step

        Raises:
            InvalidCodeFormat: If the code is malformed
            InvalidSecret: If the secret is malformed
        """
        return TOTPService.match_step(secret, code, now) is not None
