"""
Bill Models

A Bill is a scheduled receivable or payable: money that is expected to
move on a due date but has not moved yet. Settling a bill turns it into
a realized Transaction.

DESIGN DECISION: The stored status and the displayed status are not the
same thing. "Overdue" is a read-time reclassification of a pending bill
whose due date has passed (see finsaas.ledger.status). It is never
written back by this package.

Validation result models also live here, next to the records they
describe.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from finsaas.models.ledger import FundedRecord, TransactionType, UtcDatetime, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class BillType(str, Enum):
    """Direction of a bill."""
    RECEIVABLE = "receber"
    PAYABLE = "pagar"


class BillStatus(str, Enum):
    """
    Bill lifecycle status.

    CRITICAL: PAID / RECEIVED are reached only through settlement.
    OVERDUE is a display status derived at read time.
    """
    PENDING = "pendente"
    PAID = "pago"
    RECEIVED = "recebido"
    OVERDUE = "atrasado"


SETTLED_BILL_STATUSES = frozenset({BillStatus.PAID, BillStatus.RECEIVED})
OPEN_BILL_STATUSES = frozenset({BillStatus.PENDING, BillStatus.OVERDUE})

# Settlement mappings
SETTLED_STATUS_FOR = {
    BillType.RECEIVABLE: BillStatus.RECEIVED,
    BillType.PAYABLE: BillStatus.PAID,
}
TRANSACTION_TYPE_FOR = {
    BillType.RECEIVABLE: TransactionType.INCOME,
    BillType.PAYABLE: TransactionType.EXPENSE,
}


# =============================================================================
# BILL
# =============================================================================

class Bill(FundedRecord):
    """
    A receivable or payable obligation.

    Invariant: `transaction_id` is set if and only if the bill is settled.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique bill ID"
    )
    user_id: Optional[UUID] = None
    type: BillType
    description: str = Field(default="", max_length=500)
    amount: Annotated[
        Decimal,
        Field(ge=0, decimal_places=2, description="Amount due")
    ]
    due_date: date = Field(
        ...,
        description="Payment due date"
    )
    status: BillStatus = BillStatus.PENDING

    category_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text user notes"
    )

    # Back-reference to the transaction created by settlement
    transaction_id: Optional[UUID] = None
    created_at: UtcDatetime = Field(default_factory=utc_now)

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_BILL_STATUSES

    @property
    def is_open(self) -> bool:
        """Still expected to move money (pending or overdue)."""
        return self.status in OPEN_BILL_STATUSES

    @property
    def settled_status(self) -> BillStatus:
        return SETTLED_STATUS_FOR[self.type]

    @property
    def transaction_type(self) -> TransactionType:
        return TRANSACTION_TYPE_FOR[self.type]

    @model_validator(mode='after')
    def validate_settlement_link(self) -> 'Bill':
        """Settled status and transaction link must agree."""
        if self.is_settled and self.transaction_id is None:
            raise ValueError(
                "A settled bill must reference the transaction that settled it"
            )
        if not self.is_settled and self.transaction_id is not None:
            raise ValueError(
                "Only a settled bill can reference a transaction"
            )
        return self


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a record before it is written.

    Errors block the write. Warnings are reported but do not.
    """

    record_type: str = Field(
        ...,
        description="Kind of record validated (e.g., 'transaction', 'bill')"
    )
    record_id: UUID = Field(
        ...,
        description="ID of the record being validated"
    )
    validated_at: datetime = Field(
        default_factory=utc_now
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
