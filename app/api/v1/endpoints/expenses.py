"""Expense endpoints.

Every route requires a fully authenticated session: accounts with active
two-factor authentication must have presented the second factor.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.dependencies import require_step_up
from app.db.session import get_db
from app.models.expense import Expense
from app.models.user import User
from app.schemas.expense import (
    ExpenseCreate,
    ExpenseListResponse,
    ExpenseResponse,
    ExpenseUpdate,
)
from app.services.expense import ExpenseService

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    category: str | None = Query(None, max_length=100),
) -> ExpenseListResponse:
    """List the current user's expenses, newest first."""
    expenses, total = await ExpenseService.list_for_user(
        db, current_user, skip=skip, limit=limit, category=category
    )
    return ExpenseListResponse(
        items=[ExpenseResponse.model_validate(expense) for expense in expenses],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_in: ExpenseCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
) -> Expense:
    """Create an expense."""
    expense = await ExpenseService.create(db, current_user, expense_in)
    await db.commit()
    return expense


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
) -> Expense:
    """Get one expense."""
    return await ExpenseService.get(db, current_user, expense_id)


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: UUID,
    expense_in: ExpenseUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
) -> Expense:
    """Update an expense. Omitted fields are left unchanged."""
    expense = await ExpenseService.update(db, current_user, expense_id, expense_in)
    await db.commit()
    return expense


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    expense_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_step_up)],
) -> None:
    """Delete an expense."""
    await ExpenseService.delete(db, current_user, expense_id)
    await db.commit()
