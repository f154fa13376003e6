"""Tests for the audit logger."""

from decimal import Decimal
from uuid import uuid4

from finsaas.audit import AuditLogger, create_correlation_id
from finsaas.models import AuditEvent, AuditEventType, AuditSeverity
from finsaas.services import AuditStorageInterface, InMemoryAuditStorage


class BrokenAuditStorage(AuditStorageInterface):
    """Audit storage whose writes always blow up."""

    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_events_by_entity(self, entity_type, entity_id):
        return []


class TestAuditLogger:

    async def test_local_only_logging_succeeds(self):
        logger = AuditLogger()
        event = AuditEvent(event_type=AuditEventType.SYSTEM_ERROR, description="x")
        assert await logger.log(event) is True

    async def test_persists_to_storage(self, audit_logger, audit_storage):
        bill_id = uuid4()
        correlation_id = create_correlation_id()

        await audit_logger.log_bill_settled(
            bill_id=bill_id,
            transaction_id=uuid4(),
            status="pago",
            correlation_id=correlation_id,
        )

        [event] = audit_storage.events
        assert event.event_type == AuditEventType.BILL_SETTLED
        assert event.entity_id == bill_id
        assert event.correlation_id == correlation_id

    async def test_storage_failure_never_raises(self):
        logger = AuditLogger(BrokenAuditStorage())

        ok = await logger.log(
            AuditEvent(event_type=AuditEventType.STORAGE_ERROR, description="x")
        )

        assert ok is False

    async def test_helpers_build_expected_events(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        account_id = uuid4()
        transaction_id = uuid4()

        await logger.log_transaction_saved(
            transaction_id=transaction_id,
            amount=Decimal("10.00"),
            transaction_type="receita",
            account_ids=[account_id],
            is_new=True,
        )
        await logger.log_transaction_deleted(transaction_id, account_id)
        await logger.log_account_saved(account_id, "Caixa", is_new=False)
        await logger.log_account_deleted(account_id)
        await logger.log_session_invalid("JWT expired")
        await logger.log_storage_error("save bills record", "timeout")
        await logger.log_error("RuntimeError", "boom", details={"step": 3})

        assert [e.event_type for e in storage.events] == [
            AuditEventType.TRANSACTION_SAVED,
            AuditEventType.TRANSACTION_DELETED,
            AuditEventType.ACCOUNT_SAVED,
            AuditEventType.ACCOUNT_DELETED,
            AuditEventType.SESSION_INVALID,
            AuditEventType.STORAGE_ERROR,
            AuditEventType.SYSTEM_ERROR,
        ]
        assert storage.events[0].details["reconciled_accounts"] == [str(account_id)]
        assert storage.events[5].severity == AuditSeverity.ERROR

    async def test_events_by_entity(self, audit_logger, audit_storage):
        bill_id = uuid4()
        await audit_logger.log_bill_saved(bill_id, "pagar", Decimal("5.00"))
        await audit_logger.log_bill_deleted(bill_id)
        await audit_logger.log_bill_deleted(uuid4())

        events = await audit_storage.get_events_by_entity("bill", bill_id)

        assert [e.event_type for e in events] == [
            AuditEventType.BILL_SAVED,
            AuditEventType.BILL_DELETED,
        ]
