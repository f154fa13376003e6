"""
Audit Models for FinanSaaS

Every mutation of ledger state is logged for audit purposes.
This provides:
1. Traceability of every balance change back to the action that caused it
2. Debugging information when a balance looks wrong
3. Visibility into partial failures (e.g. an orphaned settlement transaction)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finsaas.models.ledger import UtcDatetime, utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"

    # Balances
    BALANCE_RECONCILED = "balance_reconciled"

    # Bills
    BILL_SAVED = "bill_saved"
    BILL_DELETED = "bill_deleted"
    BILL_SETTLED = "bill_settled"
    SETTLEMENT_REJECTED = "settlement_rejected"
    SETTLEMENT_PARTIAL_FAILURE = "settlement_partial_failure"

    # Accounts
    ACCOUNT_SAVED = "account_saved"
    ACCOUNT_DELETED = "account_deleted"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    SESSION_INVALID = "session_invalid"
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: UtcDatetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'bill')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one settlement)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(tx_id, amount, ...)
        event = AuditEventBuilder.bill_settled(bill_id, tx_id, correlation_id)
    """

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        amount: Decimal,
        transaction_type: str,
        account_ids: list[UUID],
        is_new: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        verb = "created" if is_new else "updated"
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {verb}: {transaction_type} {amount}",
            details={
                "amount": str(amount),
                "type": transaction_type,
                "is_new": is_new,
                "reconciled_accounts": [str(a) for a in account_ids],
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        account_id: Optional[UUID],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={
                "account_id": str(account_id) if account_id else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def balance_reconciled(
        account_id: UUID,
        initial_balance: Decimal,
        income: Decimal,
        expense: Decimal,
        balance: Decimal,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECONCILED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance recomputed: {balance}",
            details={
                "initial_balance": str(initial_balance),
                "income": str(income),
                "expense": str(expense),
                "balance": str(balance),
            },
        )

    @staticmethod
    def bill_saved(
        bill_id: UUID,
        bill_type: str,
        amount: Decimal,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_SAVED,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill saved: {bill_type} {amount}",
            details={
                "type": bill_type,
                "amount": str(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def bill_deleted(
        bill_id: UUID,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_DELETED,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description="Bill deleted",
            is_user_action=True,
        )

    @staticmethod
    def bill_settled(
        bill_id: UUID,
        transaction_id: UUID,
        status: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_SETTLED,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill settled as {status}",
            details={
                "transaction_id": str(transaction_id),
                "status": status,
            },
            is_user_action=True,
        )

    @staticmethod
    def settlement_rejected(
        bill_id: UUID,
        status: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Settlement rejected: bill already {status}",
            details={
                "status": status,
            },
        )

    @staticmethod
    def settlement_partial_failure(
        bill_id: UUID,
        orphan_transaction_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_PARTIAL_FAILURE,
            severity=AuditSeverity.ERROR,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description="Settlement transaction created but bill update failed",
            error_message=error_message,
            details={
                "orphan_transaction_id": str(orphan_transaction_id),
            },
        )

    @staticmethod
    def account_saved(
        account_id: UUID,
        name: str,
        is_new: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_SAVED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account {'created' if is_new else 'updated'}: {name}",
            details={
                "name": name,
                "is_new": is_new,
            },
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(
        account_id: UUID,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account deleted",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        record_type: str,
        record_id: UUID,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=record_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{record_type.capitalize()} validation failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def session_invalid(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_INVALID,
            severity=AuditSeverity.WARNING,
            description="Session expired or invalid",
            error_message=error_message,
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
