"""
Balance Reconciler

Recomputes an account's cached balance from scratch:

    balance = initial_balance + sum(settled income) - sum(settled expense)

over every transaction linked to the account.

DESIGN DECISION: Full recomputation, every time. No running totals and
no deltas are kept anywhere, so any earlier inconsistency (a crashed
workflow, a concurrent writer) is repaired by the next reconciliation.
The cost is one scan of the account's transactions per mutation.

All arithmetic is Decimal; floats never touch money.
"""

from decimal import Decimal
from typing import Iterable, NamedTuple, Optional
from uuid import UUID

import structlog

from finsaas.audit import AuditLogger
from finsaas.models.ledger import Transaction, TransactionStatus, TransactionType
from finsaas.services.storage import LedgerStorageInterface, NotFoundError


logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


class BalanceBreakdown(NamedTuple):
    """The inputs and result of one balance computation."""
    initial_balance: Decimal
    income: Decimal
    expense: Decimal
    balance: Decimal


def summarize_balance(
    initial_balance: Decimal,
    account_id: UUID,
    transactions: Iterable[Transaction],
) -> BalanceBreakdown:
    """
    Compute an account balance over a snapshot of transactions.

    Pure function. Transactions that are pending, card-funded or linked
    to another account are ignored, so the caller may pass a superset.
    """
    income = ZERO
    expense = ZERO
    for tx in transactions:
        if not tx.counts_toward(account_id):
            continue
        if tx.type == TransactionType.INCOME:
            income += tx.amount
        else:
            expense += tx.amount

    initial = initial_balance or ZERO
    return BalanceBreakdown(
        initial_balance=initial,
        income=income,
        expense=expense,
        balance=initial + income - expense,
    )


def compute_balance(
    initial_balance: Decimal,
    account_id: UUID,
    transactions: Iterable[Transaction],
) -> Decimal:
    return summarize_balance(initial_balance, account_id, transactions).balance


class BalanceReconciler:
    """
    Brings one account's stored balance back in line with its history.

    Idempotent: reconciling twice with no transaction change in between
    writes the same balance twice.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def reconcile(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Decimal:
        """
        Recompute and persist the balance of `account_id`.

        Returns:
            The new balance

        Raises:
            NotFoundError: If the account doesn't exist
            StorageError: If reading or writing fails
        """
        account = await self._storage.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")

        settled = await self._storage.list_transactions(
            account_id=account_id,
            status=TransactionStatus.SETTLED,
        )
        breakdown = summarize_balance(account.initial_balance, account_id, settled)

        await self._storage.update_account_balance(account_id, breakdown.balance)

        logger.debug(
            "balance_reconciled",
            account_id=str(account_id),
            previous=str(account.balance),
            balance=str(breakdown.balance),
            transactions=len(settled),
        )
        if self._audit_logger:
            await self._audit_logger.log_balance_reconciled(
                account_id=account_id,
                initial_balance=breakdown.initial_balance,
                income=breakdown.income,
                expense=breakdown.expense,
                balance=breakdown.balance,
                correlation_id=correlation_id,
            )

        return breakdown.balance
