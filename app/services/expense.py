"""Expense service: CRUD scoped to the owning user."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ResourceNotFoundException
from app.models.expense import Expense
from app.models.user import User
from app.repositories.expense_repository import ExpenseRepository
from app.schemas.expense import ExpenseCreate, ExpenseUpdate


class ExpenseService:
    """Service for expense records."""

    @staticmethod
    async def create(db: AsyncSession, user: User, expense_in: ExpenseCreate) -> Expense:
        """Create an expense for the user."""
        return await ExpenseRepository(db).create(
            {**expense_in.model_dump(), "user_id": user.id}
        )

    @staticmethod
    async def get(db: AsyncSession, user: User, expense_id: UUID) -> Expense:
        """
        Get one of the user's expenses.

        Raises:
            ResourceNotFoundException: If missing or owned by someone else
        """
        expense = await ExpenseRepository(db).get_for_user(expense_id, user.id)
        if expense is None:
            raise ResourceNotFoundException("Expense", str(expense_id))
        return expense

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user: User,
        skip: int = 0,
        limit: int = 100,
        category: str | None = None,
    ) -> tuple[list[Expense], int]:
        """List the user's expenses, newest first."""
        return await ExpenseRepository(db).list_for_user(
            user.id, skip=skip, limit=limit, category=category
        )

    @staticmethod
    async def update(
        db: AsyncSession, user: User, expense_id: UUID, expense_in: ExpenseUpdate
    ) -> Expense:
        """Apply a partial update to one of the user's expenses."""
        expense = await ExpenseService.get(db, user, expense_id)
        return await ExpenseRepository(db).update(
            expense, expense_in.model_dump(exclude_unset=True, exclude_none=True)
        )

    @staticmethod
    async def delete(db: AsyncSession, user: User, expense_id: UUID) -> None:
        """Delete one of the user's expenses."""
        expense = await ExpenseService.get(db, user, expense_id)
        await ExpenseRepository(db).delete(expense)
