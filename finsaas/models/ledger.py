"""
Ledger Models - Accounts and Transactions

These are the two entities whose consistency this package exists to
protect. An Account carries a cached `balance` that must always equal

    initial_balance + sum(settled income) - sum(settled expense)

over the transactions linked to it. The Transaction is the only thing
that moves that number.

DESIGN DECISION: A transaction (or bill) is funded by an account OR a
card, never both. Instead of two nullable id fields kept apart by UI
convention, the funding source is a discriminated union, so the
"account XOR card" rule cannot be violated by construction.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current UTC time used for all record timestamps."""
    return datetime.now(timezone.utc)


def _date_only_to_midnight(value: Any) -> Any:
    """Date-only values ("2024-06-01" or a date) mean midnight UTC."""
    if isinstance(value, str) and len(value) == 10:
        value = date.fromisoformat(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def _assume_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Stored timestamps are always aware; naive input is taken to be UTC
UtcDatetime = Annotated[
    datetime,
    BeforeValidator(_date_only_to_midnight),
    AfterValidator(_assume_utc),
]


# =============================================================================
# ENUMS - values are the wire values used by the store
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money movement."""
    INCOME = "receita"
    EXPENSE = "despesa"


class TransactionStatus(str, Enum):
    """
    Whether the money has actually moved.

    CRITICAL: Only SETTLED transactions count toward an account balance.
    """
    SETTLED = "pago"
    PENDING = "pendente"


class AccountType(str, Enum):
    """Kinds of accounts a user can hold."""
    CHECKING = "corrente"
    INVESTMENT = "investimento"
    CASH = "dinheiro"


# =============================================================================
# FUNDING SOURCE - tagged union
# =============================================================================

class AccountSource(BaseModel):
    """Money moves through a bank/cash account. Affects its balance."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["account"] = "account"
    account_id: UUID


class CardSource(BaseModel):
    """
    Money moves through a credit card.

    Card spending never touches an account balance in this model.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["card"] = "card"
    card_id: UUID


FundingSource = Annotated[
    Union[AccountSource, CardSource],
    Field(discriminator="kind"),
]


class FundedRecord(BaseModel):
    """Shared accessors for records that carry an optional funding source."""

    source: Optional[FundingSource] = Field(
        default=None,
        description="Account or card the money moves through"
    )

    @property
    def account_id(self) -> Optional[UUID]:
        if isinstance(self.source, AccountSource):
            return self.source.account_id
        return None

    @property
    def card_id(self) -> Optional[UUID]:
        if isinstance(self.source, CardSource):
            return self.source.card_id
        return None


# =============================================================================
# ACCOUNT
# =============================================================================

class Account(BaseModel):
    """
    A bank, investment or cash account.

    CRITICAL: `balance` is derived. Only the BalanceReconciler writes it
    after creation. UI code must never set it directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    user_id: Optional[UUID] = Field(
        default=None,
        description="Owner; stamped by the storage gateway on write"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    type: AccountType = AccountType.CHECKING
    initial_balance: Decimal = Field(
        default=Decimal("0.00"),
        decimal_places=2,
        description="Immutable baseline set at creation"
    )
    balance: Decimal = Field(
        default=Decimal("0.00"),
        decimal_places=2,
        description="Cached balance, recomputed by reconciliation"
    )

    # Presentation only
    color: str = Field(default="#18181b", max_length=20)
    icon: Optional[str] = None
    image_url: Optional[str] = None

    created_at: UtcDatetime = Field(default_factory=utc_now)


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(FundedRecord):
    """
    A realized (or scheduled) movement of money.

    A transaction contributes to an account balance if and only if it is
    SETTLED and funded by that account.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    user_id: Optional[UUID] = None
    type: TransactionType
    status: TransactionStatus = TransactionStatus.SETTLED
    amount: Annotated[
        Decimal,
        Field(ge=0, decimal_places=2, description="Amount, always non-negative")
    ]
    date: UtcDatetime = Field(
        default_factory=utc_now,
        description="When the money moved"
    )
    description: str = Field(default="", max_length=500)

    category_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    created_at: UtcDatetime = Field(default_factory=utc_now)

    # Installment metadata: carried through untouched
    is_installment: bool = False
    installment_id: Optional[UUID] = None
    current_installment: Optional[int] = Field(default=None, ge=1)
    total_installments: Optional[int] = Field(default=None, ge=1)

    @property
    def is_settled(self) -> bool:
        return self.status == TransactionStatus.SETTLED

    @property
    def signed_amount(self) -> Decimal:
        """Amount with sign applied: income positive, expense negative."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount

    def counts_toward(self, account_id: UUID) -> bool:
        """Does this transaction move the balance of `account_id`?"""
        return self.is_settled and self.account_id == account_id

    @model_validator(mode='after')
    def validate_installments(self) -> 'Transaction':
        """Installment position cannot run past the installment count."""
        if self.current_installment and self.total_installments:
            if self.current_installment > self.total_installments:
                raise ValueError(
                    "Current installment cannot exceed total installments"
                )
        return self
