"""
Data Models Package

This package contains all Pydantic models used in FinanSaaS.
All data flowing through the ledger core must conform to these schemas.
"""

from finsaas.models.ledger import (
    Account,
    AccountSource,
    AccountType,
    CardSource,
    FundingSource,
    Transaction,
    TransactionStatus,
    TransactionType,
    UtcDatetime,
    utc_now,
)
from finsaas.models.bill import (
    Bill,
    BillStatus,
    BillType,
    OPEN_BILL_STATUSES,
    SETTLED_BILL_STATUSES,
    ValidationIssue,
    ValidationResult,
)
from finsaas.models.records import (
    Card,
    Category,
    CategoryType,
    Client,
    Goal,
    Recurrence,
    RecurrenceStatus,
)
from finsaas.models.events import ChangeEvent, ChangeKind
from finsaas.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountSource",
    "AccountType",
    "CardSource",
    "FundingSource",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "UtcDatetime",
    "utc_now",
    # Bill models
    "Bill",
    "BillStatus",
    "BillType",
    "OPEN_BILL_STATUSES",
    "SETTLED_BILL_STATUSES",
    "ValidationIssue",
    "ValidationResult",
    # Supporting records
    "Card",
    "Category",
    "CategoryType",
    "Client",
    "Goal",
    "Recurrence",
    "RecurrenceStatus",
    # Change notifications
    "ChangeEvent",
    "ChangeKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
