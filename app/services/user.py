"""User service for user management operations."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_password_hash, verify_password
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.user import UserCreate


class UserService:
    """Service for user management operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> User | None:
        """Get user by ID."""
        return await UserRepository(db).get_by_id(user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get user by email."""
        return await UserRepository(db).get_by_email(email)

    @staticmethod
    async def create(db: AsyncSession, user_in: UserCreate) -> User:
        """Create a new user."""
        return await UserRepository(db).create(
            {
                "email": user_in.email.lower(),
                "full_name": user_in.full_name,
                "hashed_password": get_password_hash(user_in.password),
            }
        )

    @staticmethod
    async def verify_password(user: User, password: str) -> bool:
        """Verify user password."""
        if not user.hashed_password:
            return False
        return verify_password(password, user.hashed_password)
