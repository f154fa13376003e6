"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Traceability of every balance recomputation
2. Debugging capability when a balance looks wrong
3. A record of partial failures that need manual repair

The audit logger:
- Is async to fit the workflows that call it
- Gracefully handles failures (never breaks a workflow if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finsaas.models.audit import AuditEvent, AuditEventBuilder
from finsaas.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finsaas.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_saved(
        self,
        transaction_id: UUID,
        amount: Decimal,
        transaction_type: str,
        account_ids: list[UUID],
        is_new: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            amount=amount,
            transaction_type=transaction_type,
            account_ids=account_ids,
            is_new=is_new,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        account_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            account_id=account_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_reconciled(
        self,
        account_id: UUID,
        initial_balance: Decimal,
        income: Decimal,
        expense: Decimal,
        balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance recomputation with its inputs."""
        event = AuditEventBuilder.balance_reconciled(
            account_id=account_id,
            initial_balance=initial_balance,
            income=income,
            expense=expense,
            balance=balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_saved(
        self,
        bill_id: UUID,
        bill_type: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_saved(
            bill_id=bill_id,
            bill_type=bill_type,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_deleted(
        self,
        bill_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bill_deleted(bill_id, correlation_id))

    async def log_bill_settled(
        self,
        bill_id: UUID,
        transaction_id: UUID,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_settled(
            bill_id=bill_id,
            transaction_id=transaction_id,
            status=status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_rejected(
        self,
        bill_id: UUID,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an attempt to settle an already settled bill."""
        event = AuditEventBuilder.settlement_rejected(
            bill_id=bill_id,
            status=status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_partial_failure(
        self,
        bill_id: UUID,
        orphan_transaction_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Log a settlement whose transaction was written but whose bill
        update failed. The orphan transaction needs manual attention.
        """
        event = AuditEventBuilder.settlement_partial_failure(
            bill_id=bill_id,
            orphan_transaction_id=orphan_transaction_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_saved(
        self,
        account_id: UUID,
        name: str,
        is_new: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.account_saved(
            account_id=account_id,
            name=name,
            is_new=is_new,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_deleted(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_deleted(account_id, correlation_id))

    async def log_validation_failed(
        self,
        record_type: str,
        record_id: UUID,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            record_type=record_type,
            record_id=record_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_session_invalid(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.session_invalid(error_message, correlation_id))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.storage_error(operation, error_message, correlation_id)
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., settling a bill).
    Pass it through all subsequent operations.
    """
    return uuid4()
