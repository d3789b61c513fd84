"""Authentication dependencies for API endpoints."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import TokenClaims, decode_access_token
from app.db.session import get_db
from app.models.user import User
from app.repositories.account_store import AccountStore, SQLAlchemyAccountStore
from app.services.enrollment import EnrollmentService
from app.services.step_up import StepUpGate
from app.services.user import UserService

security = HTTPBearer(auto_error=False)


def get_account_store(db: Annotated[AsyncSession, Depends(get_db)]) -> AccountStore:
    """Account store bound to the request's database session."""
    return SQLAlchemyAccountStore(db)


def get_enrollment_service(
    store: Annotated[AccountStore, Depends(get_account_store)],
) -> EnrollmentService:
    return EnrollmentService(store)


def get_step_up_gate(
    store: Annotated[AccountStore, Depends(get_account_store)],
    enrollment: Annotated[EnrollmentService, Depends(get_enrollment_service)],
) -> StepUpGate:
    return StepUpGate(store, enrollment)


async def get_token_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> TokenClaims:
    """
    Decode the bearer token.

    Raises:
        HTTPException: If the token is missing or invalid
    """
    claims = decode_access_token(credentials.credentials) if credentials else None

    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return claims


async def get_current_user(
    request: Request,
    claims: Annotated[TokenClaims, Depends(get_token_claims)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Get current authenticated user from JWT token.

    The user may not have presented a second factor yet; use
    `require_step_up` for endpoints that need a fully authenticated session.

    Raises:
        HTTPException: If user not found or inactive
    """
    try:
        user_id = UUID(claims.subject)
    except ValueError:
        user_id = None

    user = await UserService.get_by_id(db, user_id) if user_id else None

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )

    request.state.user = user
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


async def require_step_up(
    current_user: Annotated[User, Depends(get_current_user)],
    claims: Annotated[TokenClaims, Depends(get_token_claims)],
    gate: Annotated[StepUpGate, Depends(get_step_up_gate)],
) -> User:
    """
    Get current user whose session satisfied the second factor when required.

    Raises:
        HTTPException: If the account has active 2FA and the token is not step-up verified
    """
    if claims.two_factor_verified:
        return current_user

    if await gate.is_second_factor_required(current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Two-factor verification required",
        )

    return current_user
