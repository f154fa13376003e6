"""
Supporting records: cards, categories, clients, goals and recurrences.

These are plain owned records. None of them carries a cross-entity
consistency obligation, so they are only ever created, edited and
deleted as a whole.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finsaas.models.ledger import TransactionType, UtcDatetime, utc_now


class CategoryType(str, Enum):
    INCOME = "receita"
    EXPENSE = "despesa"
    BOTH = "ambos"


class RecurrenceStatus(str, Enum):
    ACTIVE = "ativa"
    PAUSED = "pausada"


class Card(BaseModel):
    """A credit card. Spending on it never touches an account balance."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    limit: Annotated[Decimal, Field(ge=0, decimal_places=2)] = Decimal("0.00")
    closing_day: int = Field(default=1, ge=1, le=31)
    due_day: int = Field(default=10, ge=1, le=31)
    color: str = Field(default="#18181b", max_length=20)
    image_url: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utc_now)


class Category(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = CategoryType.BOTH
    color: str = Field(default="#71717a", max_length=20)
    icon: str = Field(default="tag", max_length=50)


class Client(BaseModel):
    """Someone who pays (or is paid by) the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    image_url: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utc_now)


class Goal(BaseModel):
    """Monthly revenue target."""

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    revenue_target: Annotated[Decimal, Field(ge=0, decimal_places=2)]
    created_at: UtcDatetime = Field(default_factory=utc_now)


class Recurrence(BaseModel):
    """
    A recurring monthly income or expense.

    Recurrences feed the MRR figures on the dashboard. They do not
    generate transactions on their own.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    type: TransactionType
    description: str = Field(default="", max_length=500)
    amount: Annotated[Decimal, Field(ge=0, decimal_places=2)]
    client_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    start_date: date
    frequency: Literal["mensal"] = "mensal"
    status: RecurrenceStatus = RecurrenceStatus.ACTIVE
    created_at: UtcDatetime = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == RecurrenceStatus.ACTIVE
