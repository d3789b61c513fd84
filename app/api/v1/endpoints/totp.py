"""Two-factor (TOTP) endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.dependencies import (
    get_current_user,
    get_enrollment_service,
    get_step_up_gate,
    require_step_up,
)
from app.core.exceptions import VerificationFailed
from app.db.session import get_db
from app.models.user import User
from app.schemas.totp import (
    EnrollmentBeginResponse,
    EnrollmentConfirmRequest,
    RegenerateBackupCodesResponse,
    TwoFactorEnabledResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyRequest,
    TwoFactorVerifyResponse,
)
from app.services.auth import AuthService
from app.services.enrollment import EnrollmentService
from app.services.step_up import StepUpGate
from app.services.totp import TOTPService

router = APIRouter(prefix="/two-factor", tags=["2fa"])


@router.post("/enroll/begin", response_model=EnrollmentBeginResponse)
async def begin_enrollment(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> EnrollmentBeginResponse:
    """
    Start two-factor enrollment for the current user.

    Returns the provisioning URI, a QR code and the backup codes. Backup
    codes are shown only here; they become usable once enrollment is confirmed.
    """
    start = await enrollment.begin_enrollment(current_user.id, current_user.email)
    await db.commit()

    return EnrollmentBeginResponse(
        provisioning_uri=start.provisioning_uri,
        secret=start.secret,
        qr_code=TOTPService.generate_qr_code(start.provisioning_uri),
        backup_codes=start.backup_codes,
        expires_at=start.expires_at,
    )


@router.post("/enroll/confirm", response_model=TwoFactorEnabledResponse)
async def confirm_enrollment(
    confirm_request: EnrollmentConfirmRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> TwoFactorEnabledResponse:
    """Confirm enrollment with a code from the authenticator app."""
    confirmed = await enrollment.confirm_enrollment(current_user.id, confirm_request.code)
    await db.commit()

    if not confirmed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid verification code",
        )

    return TwoFactorEnabledResponse(enabled=True)


@router.post("/enroll/cancel", response_model=TwoFactorEnabledResponse)
async def cancel_enrollment(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> TwoFactorEnabledResponse:
    """Abandon a pending enrollment."""
    await enrollment.cancel_enrollment(current_user.id)
    await db.commit()

    current_status = await enrollment.status(current_user.id)
    return TwoFactorEnabledResponse(enabled=current_status.enabled)


@router.post("/verify", response_model=TwoFactorVerifyResponse)
async def verify_second_factor(
    verify_request: TwoFactorVerifyRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    gate: Annotated[StepUpGate, Depends(get_step_up_gate)],
) -> TwoFactorVerifyResponse:
    """
    Verify a TOTP code or backup code for the current session.

    On success returns a replacement access token that passes step-up checks.
    """
    verified = await gate.verify_second_factor(
        current_user.id,
        verify_request.code,
        is_backup_code=verify_request.is_backup_code,
    )
    await db.commit()

    if not verified:
        raise VerificationFailed()

    return TwoFactorVerifyResponse(access_token=AuthService.issue_step_up_token(current_user))


@router.post("/disable", response_model=TwoFactorEnabledResponse)
async def disable_two_factor(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> TwoFactorEnabledResponse:
    """Disable two-factor authentication. Requires a step-up verified session."""
    await enrollment.disable(current_user.id)
    await db.commit()

    return TwoFactorEnabledResponse(enabled=False)


@router.get("/status", response_model=TwoFactorStatusResponse)
async def get_two_factor_status(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> TwoFactorStatusResponse:
    """Get two-factor status for the current user."""
    current_status = await enrollment.status(current_user.id)
    # Reading may have discarded an expired pending enrollment
    await db.commit()

    return TwoFactorStatusResponse.model_validate(current_status)


@router.post("/backup-codes", response_model=RegenerateBackupCodesResponse)
async def regenerate_backup_codes(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> RegenerateBackupCodesResponse:
    """
    Regenerate backup codes for the current user.

    Requires a step-up verified session. Old backup codes are invalidated.
    """
    backup_codes = await enrollment.regenerate_backup_codes(current_user.id)
    await db.commit()

    return RegenerateBackupCodesResponse(backup_codes=backup_codes)
