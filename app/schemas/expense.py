"""Expense schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class ExpenseBase(BaseModel):
    """Fields shared by create and response schemas."""

    title: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    category: str = Field(min_length=1, max_length=100)
    date: datetime


class ExpenseCreate(ExpenseBase):
    """Schema for creating an expense."""


class ExpenseUpdate(BaseModel):
    """Schema for partial expense updates."""

    title: str | None = Field(None, min_length=1, max_length=255)
    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    category: str | None = Field(None, min_length=1, max_length=100)
    date: datetime | None = None


class ExpenseResponse(ExpenseBase):
    """Schema for expense responses."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ExpenseListResponse(BaseModel):
    """Paginated expense list response."""

    items: list[ExpenseResponse]
    total: int
    skip: int
    limit: int
