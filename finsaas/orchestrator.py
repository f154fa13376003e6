"""
Main Orchestrator for FinanSaaS

This module ties together all the components and defines the
end-to-end flows for:
1. Transaction upsert / delete (write → reconcile → notify)
2. Bill settlement (bill → transaction → reconcile → bill → notify)
3. Bill and account maintenance

DESIGN DECISION: The orchestrator enforces the boundaries:
- An account balance is only ever written by reconciliation
- Reconciliation only ever runs after a committed transaction write
- A bill is only ever settled through settlement, which routes its
  transaction through the same upsert flow as a hand-entered one
- Every step is audited

Steps within a flow run strictly in order. Errors propagate unchanged;
nothing here catches and continues. Only the audit and notification
side channels are allowed to fail quietly.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, NamedTuple, Optional, Union
from uuid import UUID, uuid4

import structlog

from finsaas.audit import AuditLogger, create_correlation_id
from finsaas.config import get_settings
from finsaas.events import ChangeNotifier
from finsaas.ledger import (
    BalanceReconciler,
    InvalidStateError,
    LedgerError,
    ValidationFailedError,
    with_display_status,
)
from finsaas.models import (
    Account,
    Bill,
    BillStatus,
    BillType,
    ChangeEvent,
    ChangeKind,
    Transaction,
    TransactionStatus,
    ValidationResult,
    utc_now,
)
from finsaas.queries import DashboardQueries, ReportQueries
from finsaas.services import (
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    SessionInvalidError,
    SessionProvider,
    StaticSessionProvider,
    StorageError,
    SupabaseLedgerStorage,
    SupabaseSessionProvider,
    create_supabase_client,
)
from finsaas.validation import LedgerValidator


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def _issue_dicts(result: ValidationResult) -> list[dict]:
    return [
        {"field": i.field, "type": i.issue_type, "message": i.message}
        for i in result.issues
        if i.severity == "error"
    ]


async def _audit_failure(
    audit_logger: Optional[AuditLogger],
    operation: str,
    error: Exception,
    correlation_id: UUID,
) -> None:
    """
    Record why a flow failed. The caller re-raises.

    Rule violations are audited where they are detected and a missing
    record is the caller's mistake, so only session, storage and
    unexpected failures are recorded here.
    """
    if audit_logger is None or isinstance(error, (LedgerError, NotFoundError)):
        return
    if isinstance(error, SessionInvalidError):
        await audit_logger.log_session_invalid(str(error), correlation_id)
    elif isinstance(error, StorageError):
        await audit_logger.log_storage_error(operation, str(error), correlation_id)
    else:
        await audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
            correlation_id=correlation_id,
        )


class TransactionFlow:
    """
    Orchestrates transaction writes.

    Flow (upsert):
    1. Validate → errors stop here, nothing is written
    2. Read the stored version → remember its account
    3. Write
    4. Reconcile the new account (if any)
    5. Reconcile the previous account (if it existed and differs)
    6. Notify

    If the write fails nothing is reconciled. If a reconciliation
    fails the write stays committed and the error propagates; the
    next reconciliation of that account repairs the balance.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        reconciler: Optional[BalanceReconciler] = None,
        notifier: Optional[ChangeNotifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._reconciler = reconciler or BalanceReconciler(storage, audit_logger)
        self._notifier = notifier
        self._validator = validator or LedgerValidator()

    async def _validate(
        self,
        transaction: Transaction,
        correlation_id: UUID,
    ) -> ValidationResult:
        result = self._validator.validate_transaction(transaction)
        if result.has_errors:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    record_type="transaction",
                    record_id=transaction.id,
                    issues=_issue_dicts(result),
                    correlation_id=correlation_id,
                )
            raise ValidationFailedError(result)
        return result

    async def _publish(self, event: ChangeEvent) -> None:
        if self._notifier:
            await self._notifier.publish(event)

    async def upsert(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Create or edit a transaction and bring the affected balances up to date.

        Returns:
            The transaction as stored

        Raises:
            ValidationFailedError: If the transaction fails validation
            NotFoundError: If the transaction names an account that doesn't exist
            StorageError: If the write or a reconciliation fails
            SessionInvalidError: If there is no valid session
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            return await self._upsert(transaction, correlation_id)
        except Exception as e:
            await _audit_failure(self._audit_logger, "transaction upsert", e, correlation_id)
            raise

    async def _upsert(self, transaction: Transaction, correlation_id: UUID) -> Transaction:
        await self._validate(transaction, correlation_id)

        if transaction.account_id is not None:
            if await self._storage.get_account(transaction.account_id) is None:
                raise NotFoundError(f"Account not found: {transaction.account_id}")

        previous = await self._storage.get_transaction(transaction.id)
        previous_account_id = previous.account_id if previous else None

        stored = await self._storage.save_transaction(transaction)

        reconciled = []
        if stored.account_id is not None:
            await self._reconciler.reconcile(stored.account_id, correlation_id)
            reconciled.append(stored.account_id)
        if previous_account_id is not None and previous_account_id != stored.account_id:
            await self._reconciler.reconcile(previous_account_id, correlation_id)
            reconciled.append(previous_account_id)

        if self._audit_logger:
            await self._audit_logger.log_transaction_saved(
                transaction_id=stored.id,
                amount=stored.amount,
                transaction_type=stored.type.value,
                account_ids=reconciled,
                is_new=previous is None,
                correlation_id=correlation_id,
            )

        await self._publish(ChangeEvent(
            kind=ChangeKind.TRANSACTIONS_CHANGED,
            entity_id=stored.id,
            account_ids=reconciled,
            correlation_id=correlation_id,
        ))

        return stored

    async def remove(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a transaction and reconcile the account it was linked to.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If the delete or the reconciliation fails
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            await self._remove(transaction_id, correlation_id)
        except Exception as e:
            await _audit_failure(self._audit_logger, "transaction delete", e, correlation_id)
            raise

    async def _remove(self, transaction_id: UUID, correlation_id: UUID) -> None:
        existing = await self._storage.get_transaction(transaction_id)
        if existing is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        if not await self._storage.delete_transaction(transaction_id):
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        reconciled = []
        if existing.account_id is not None:
            await self._reconciler.reconcile(existing.account_id, correlation_id)
            reconciled.append(existing.account_id)

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                account_id=existing.account_id,
                correlation_id=correlation_id,
            )

        await self._publish(ChangeEvent(
            kind=ChangeKind.TRANSACTIONS_CHANGED,
            entity_id=transaction_id,
            account_ids=reconciled,
            correlation_id=correlation_id,
        ))


class SettlementResult(NamedTuple):
    """What a settlement produced."""
    bill: Bill
    transaction: Transaction


class BillFlow:
    """
    Orchestrates bill maintenance and settlement.

    Settlement flow:
    1. Refuse if the bill is already settled (as given or as stored)
    2. Map the bill type to a settled status and a transaction type
    3. Build a settled transaction dated now
    4. Write it through TransactionFlow (reconciles the account)
    5. Mark the bill settled and link the transaction
    6. Notify

    There is no rollback. If step 5 fails, the transaction from step 4
    stays in place, the orphan is recorded in the audit log at error
    severity and the error propagates.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        transaction_flow: Optional[TransactionFlow] = None,
        notifier: Optional[ChangeNotifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._validator = validator or LedgerValidator()
        self._transaction_flow = transaction_flow or TransactionFlow(
            storage,
            notifier=notifier,
            audit_logger=audit_logger,
            validator=self._validator,
        )
        self._clock = clock or utc_now

    async def _publish(self, event: ChangeEvent) -> None:
        if self._notifier:
            await self._notifier.publish(event)

    async def _reject_settled(self, bill: Bill, correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_settlement_rejected(
                bill_id=bill.id,
                status=bill.status.value,
                correlation_id=correlation_id,
            )
        raise InvalidStateError(
            f"Bill {bill.id} is already settled ({bill.status.value})"
        )

    async def settle(
        self,
        bill: Bill,
        correlation_id: Optional[UUID] = None,
    ) -> SettlementResult:
        """
        Mark a bill as paid (payable) or received (receivable).

        The transaction is built from the STORED bill, so a display copy
        (e.g. one shown as overdue) can be passed in safely.

        Raises:
            InvalidStateError: If the bill is already settled
            NotFoundError: If the bill, or the account it names, doesn't exist
            StorageError: If a write fails
        """
        correlation_id = correlation_id or create_correlation_id()

        if bill.is_settled:
            await self._reject_settled(bill, correlation_id)

        try:
            stored = await self._storage.get_bill(bill.id)
        except Exception as e:
            await _audit_failure(self._audit_logger, "bill settlement", e, correlation_id)
            raise
        if stored is None:
            raise NotFoundError(f"Bill not found: {bill.id}")
        if stored.is_settled:
            await self._reject_settled(stored, correlation_id)

        transaction = Transaction(
            id=uuid4(),
            type=stored.transaction_type,
            status=TransactionStatus.SETTLED,
            amount=stored.amount,
            date=self._clock(),
            description=stored.description,
            source=stored.source,
            category_id=stored.category_id,
            client_id=stored.client_id,
        )
        transaction = await self._transaction_flow.upsert(transaction, correlation_id)

        settled = stored.model_copy(update={
            "status": stored.settled_status,
            "transaction_id": transaction.id,
        })
        try:
            settled = await self._storage.save_bill(settled)
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_settlement_partial_failure(
                    bill_id=stored.id,
                    orphan_transaction_id=transaction.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_bill_settled(
                bill_id=settled.id,
                transaction_id=transaction.id,
                status=settled.status.value,
                correlation_id=correlation_id,
            )

        await self._publish(ChangeEvent(
            kind=ChangeKind.BILLS_CHANGED,
            entity_id=settled.id,
            account_ids=[transaction.account_id] if transaction.account_id else [],
            correlation_id=correlation_id,
        ))

        return SettlementResult(bill=settled, transaction=transaction)

    async def save(
        self,
        bill: Bill,
        correlation_id: Optional[UUID] = None,
    ) -> Bill:
        """
        Create or edit an unsettled bill.

        A bill shown as overdue is stored back as pending.

        Raises:
            InvalidStateError: If the bill is settled, as given or as stored
            ValidationFailedError: If the bill fails validation
        """
        correlation_id = correlation_id or create_correlation_id()

        if bill.is_settled:
            raise InvalidStateError(
                "A bill can only become paid or received through settlement"
            )
        if bill.status == BillStatus.OVERDUE:
            bill = bill.model_copy(update={"status": BillStatus.PENDING})

        result = self._validator.validate_bill(bill)
        if result.has_errors:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    record_type="bill",
                    record_id=bill.id,
                    issues=_issue_dicts(result),
                    correlation_id=correlation_id,
                )
            raise ValidationFailedError(result)

        stored = await self._storage.get_bill(bill.id)
        if stored is not None and stored.is_settled:
            raise InvalidStateError(f"Bill {bill.id} is settled and can no longer be edited")

        saved = await self._storage.save_bill(bill)

        if self._audit_logger:
            await self._audit_logger.log_bill_saved(
                bill_id=saved.id,
                bill_type=saved.type.value,
                amount=saved.amount,
                correlation_id=correlation_id,
            )

        await self._publish(ChangeEvent(
            kind=ChangeKind.BILLS_CHANGED,
            entity_id=saved.id,
            correlation_id=correlation_id,
        ))

        return saved

    async def delete(
        self,
        bill_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a bill. A transaction it generated is left alone.

        Raises:
            NotFoundError: If the bill doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        if not await self._storage.delete_bill(bill_id):
            raise NotFoundError(f"Bill not found: {bill_id}")

        if self._audit_logger:
            await self._audit_logger.log_bill_deleted(bill_id, correlation_id)

        await self._publish(ChangeEvent(
            kind=ChangeKind.BILLS_CHANGED,
            entity_id=bill_id,
            correlation_id=correlation_id,
        ))

    async def list_for_display(
        self,
        as_of: Optional[Union[date, datetime]] = None,
        bill_type: Optional[BillType] = None,
        status: Optional[BillStatus] = None,
    ) -> list[Bill]:
        """
        Bills with their display status, ordered by due date.

        `status` filters on the DISPLAY status, so OVERDUE works.
        """
        bills = await self._storage.list_bills(bill_type=bill_type)
        bills = with_display_status(bills, as_of or self._clock())
        if status is not None:
            bills = [bill for bill in bills if bill.status == status]
        return bills


class AccountFlow:
    """
    Orchestrates account maintenance.

    The stored balance is never taken from the caller: a new account
    starts at its initial balance, an edited one keeps the stored
    balance and is reconciled if its initial balance moved.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        reconciler: Optional[BalanceReconciler] = None,
        notifier: Optional[ChangeNotifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._reconciler = reconciler or BalanceReconciler(storage, audit_logger)
        self._notifier = notifier
        self._audit_logger = audit_logger

    async def _publish(self, event: ChangeEvent) -> None:
        if self._notifier:
            await self._notifier.publish(event)

    async def save(
        self,
        account: Account,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()

        stored = await self._storage.get_account(account.id)
        if stored is None:
            account = account.model_copy(update={"balance": account.initial_balance})
        else:
            account = account.model_copy(update={"balance": stored.balance})

        saved = await self._storage.save_account(account)

        reconciled = []
        if stored is not None and stored.initial_balance != saved.initial_balance:
            balance = await self._reconciler.reconcile(saved.id, correlation_id)
            saved = saved.model_copy(update={"balance": balance})
            reconciled.append(saved.id)

        if self._audit_logger:
            await self._audit_logger.log_account_saved(
                account_id=saved.id,
                name=saved.name,
                is_new=stored is None,
                correlation_id=correlation_id,
            )

        await self._publish(ChangeEvent(
            kind=ChangeKind.ACCOUNTS_CHANGED,
            entity_id=saved.id,
            account_ids=reconciled,
            correlation_id=correlation_id,
        ))

        return saved

    async def delete(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an account. Its transactions are left in place.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        if not await self._storage.delete_account(account_id):
            raise NotFoundError(f"Account not found: {account_id}")

        if self._audit_logger:
            await self._audit_logger.log_account_deleted(account_id, correlation_id)

        await self._publish(ChangeEvent(
            kind=ChangeKind.ACCOUNTS_CHANGED,
            entity_id=account_id,
            correlation_id=correlation_id,
        ))


@dataclass
class AppComponents:
    """Everything the application shell needs, wired together."""
    storage: LedgerStorageInterface
    audit_logger: AuditLogger
    notifier: ChangeNotifier
    transactions: TransactionFlow
    bills: BillFlow
    accounts: AccountFlow
    dashboard: DashboardQueries
    reports: ReportQueries


def _create_storage(
    backend: str,
    session: Optional[SessionProvider],
) -> tuple[LedgerStorageInterface, AuditLogger]:
    if backend == "supabase":
        client = create_supabase_client()
        session = session or SupabaseSessionProvider(client)
        return SupabaseLedgerStorage(session, client), AuditLogger()

    if backend == "google_sheets":
        if session is None:
            raise ValueError("The google_sheets backend needs a session provider")
        sheets_client = GoogleSheetsClient()
        return (
            GoogleSheetsLedgerStorage(session, sheets_client),
            AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
        )

    if backend == "memory":
        session = session or StaticSessionProvider(uuid4())
        return InMemoryLedgerStorage(session), AuditLogger(InMemoryAuditStorage())

    raise ValueError(f"Unknown storage backend: {backend}")


def create_app_components(
    backend: Optional[str] = None,
    session: Optional[SessionProvider] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: "supabase", "google_sheets" or "memory".
                 Defaults to the configured storage backend.
        session: Identity provider. Required for google_sheets.
                 Supabase defaults to the client's own auth session,
                 memory to a throwaway local user.

    Raises:
        ConnectionError: If the chosen backend cannot be set up. There is
                         no silent fallback; in-memory storage is only
                         used when asked for.
    """
    app_settings = get_settings().app
    logging.getLogger("finsaas").setLevel(
        "DEBUG" if app_settings.debug_mode else app_settings.log_level
    )
    backend = backend or app_settings.storage_backend

    try:
        storage, audit_logger = _create_storage(backend, session)
    except Exception as e:
        logger.error(
            "storage_not_configured",
            backend=backend,
            error=str(e),
        )
        raise ConnectionError(
            f"Storage backend '{backend}' could not be set up: {e}"
        ) from e

    notifier = ChangeNotifier()
    validator = LedgerValidator()
    reconciler = BalanceReconciler(storage, audit_logger)

    transactions = TransactionFlow(
        storage,
        reconciler=reconciler,
        notifier=notifier,
        audit_logger=audit_logger,
        validator=validator,
    )
    bills = BillFlow(
        storage,
        transaction_flow=transactions,
        notifier=notifier,
        audit_logger=audit_logger,
        validator=validator,
    )
    accounts = AccountFlow(
        storage,
        reconciler=reconciler,
        notifier=notifier,
        audit_logger=audit_logger,
    )

    return AppComponents(
        storage=storage,
        audit_logger=audit_logger,
        notifier=notifier,
        transactions=transactions,
        bills=bills,
        accounts=accounts,
        dashboard=DashboardQueries(storage),
        reports=ReportQueries(storage),
    )
