"""Authentication service: password login and step-up token issuance."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import get_logger
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.user import User
from app.repositories.account_store import SQLAlchemyAccountStore
from app.schemas.auth import Token
from app.services.step_up import StepUpGate
from app.services.user import UserService

logger = get_logger(__name__)

# Compared against when the email is unknown so response time does not reveal it
_DUMMY_PASSWORD_HASH = get_password_hash("not-a-real-password-0")


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    async def authenticate_local(
        db: AsyncSession, email: str, password: str
    ) -> tuple[User | None, Token | None]:
        """
        Authenticate user with email and password.

        Users with active two-factor authentication get a token that is not
        step-up verified; they must present a second factor before gated
        endpoints accept it.

        Args:
            db: Database session
            email: User email
            password: User password

        Returns:
            Tuple of (user, token), or (None, None) if credentials are invalid
        """
        user = await UserService.get_by_email(db, email)

        if not user:
            verify_password(password, _DUMMY_PASSWORD_HASH)
            logger.info("login_failed", reason="unknown_email")
            return None, None

        if not await UserService.verify_password(user, password) or not user.is_active:
            logger.info("login_failed", user_id=str(user.id), reason="bad_credentials")
            return None, None

        gate = StepUpGate(SQLAlchemyAccountStore(db))
        two_factor_required = await gate.is_second_factor_required(user.id)

        logger.info(
            "login_succeeded",
            user_id=str(user.id),
            two_factor_required=two_factor_required,
        )

        return user, Token(
            access_token=create_access_token(str(user.id), two_factor_verified=False),
            two_factor_required=two_factor_required,
        )

    @staticmethod
    def issue_step_up_token(user: User) -> str:
        """Issue a token marking the second factor as satisfied for this session."""
        return create_access_token(str(user.id), two_factor_verified=True)
