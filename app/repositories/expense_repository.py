"""Expense repository scoped to a single owner."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.expense import Expense
from app.repositories.base import BaseRepository


class ExpenseRepository(BaseRepository[Expense]):
    """Repository for Expense model. Every query filters on the owner."""

    def __init__(self, db: AsyncSession):
        """Initialize expense repository."""
        super().__init__(Expense, db)

    async def get_for_user(self, expense_id: UUID, user_id: UUID) -> Expense | None:
        """Get an expense only if it belongs to the user."""
        result = await self.db.execute(
            select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: UUID,
        skip: int = 0,
        limit: int = 100,
        category: str | None = None,
    ) -> tuple[list[Expense], int]:
        """List a user's expenses, newest first, with the total count."""
        query = select(Expense).where(Expense.user_id == user_id)
        count_query = select(func.count(Expense.id)).where(Expense.user_id == user_id)

        if category:
            query = query.where(Expense.category == category)
            count_query = count_query.where(Expense.category == category)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(Expense.date.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total
