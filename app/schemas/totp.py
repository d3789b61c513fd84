"""TOTP schemas for 2FA."""

from datetime import datetime

from pydantic import BaseModel, Field


class EnrollmentBeginResponse(BaseModel):
    """Response for starting enrollment. Backup codes are only ever returned here."""

    provisioning_uri: str
    secret: str
    qr_code: str
    backup_codes: list[str]
    expires_at: datetime


class EnrollmentConfirmRequest(BaseModel):
    """Request to confirm enrollment with a code from the authenticator app."""

    code: str = Field(min_length=6, max_length=8)


class TwoFactorVerifyRequest(BaseModel):
    """Request to satisfy the second factor for the current session."""

    code: str = Field(min_length=6, max_length=16)
    is_backup_code: bool = False


class TwoFactorVerifyResponse(BaseModel):
    """Response with a step-up verified token."""

    verified: bool = True
    access_token: str
    token_type: str = "bearer"


class TwoFactorEnabledResponse(BaseModel):
    """Enabled flag after a state change."""

    enabled: bool


class TwoFactorStatusResponse(BaseModel):
    """TOTP status response."""

    enabled: bool
    pending: bool
    enabled_at: datetime | None = None
    last_used_at: datetime | None = None
    pending_expires_at: datetime | None = None
    backup_codes_remaining: int = 0

    model_config = {"from_attributes": True}


class RegenerateBackupCodesResponse(BaseModel):
    """Response with new backup codes."""

    backup_codes: list[str]
