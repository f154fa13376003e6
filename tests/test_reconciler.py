"""Tests for balance reconciliation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import make_account, make_transaction
from finsaas.ledger import compute_balance, summarize_balance
from finsaas.models import (
    AuditEventType,
    CardSource,
    TransactionStatus,
    TransactionType,
)
from finsaas.services import NotFoundError


class TestComputeBalance:
    """The pure balance function."""

    def test_no_transactions_is_initial_balance(self):
        account = make_account("100.00")
        assert compute_balance(account.initial_balance, account.id, []) == Decimal("100.00")

    def test_income_adds_and_expense_subtracts(self):
        account = make_account("100.00")
        transactions = [
            make_transaction(account, "50.00", type=TransactionType.INCOME),
            make_transaction(account, "30.00", type=TransactionType.EXPENSE),
        ]
        assert compute_balance(account.initial_balance, account.id, transactions) == Decimal("120.00")

    def test_pending_transactions_ignored(self):
        account = make_account("100.00")
        transactions = [
            make_transaction(account, "50.00"),
            make_transaction(account, "999.00", status=TransactionStatus.PENDING),
        ]
        assert compute_balance(account.initial_balance, account.id, transactions) == Decimal("150.00")

    def test_other_accounts_and_cards_ignored(self):
        account = make_account("0.00")
        other = make_account("0.00")
        transactions = [
            make_transaction(account, "10.00"),
            make_transaction(other, "20.00"),
            make_transaction(
                None, "40.00",
                type=TransactionType.EXPENSE,
                source=CardSource(card_id=uuid4()),
            ),
        ]
        assert compute_balance(account.initial_balance, account.id, transactions) == Decimal("10.00")

    def test_decimal_sums_are_exact(self):
        """0.10 + 0.20 is 0.30, not 0.30000000000000004."""
        account = make_account("0.00")
        transactions = [
            make_transaction(account, "0.10"),
            make_transaction(account, "0.20"),
        ]
        assert compute_balance(Decimal("0.00"), account.id, transactions) == Decimal("0.30")

    def test_breakdown_reports_totals(self):
        account = make_account("10.00")
        transactions = [
            make_transaction(account, "5.00", type=TransactionType.INCOME),
            make_transaction(account, "2.00", type=TransactionType.EXPENSE),
        ]
        breakdown = summarize_balance(account.initial_balance, account.id, transactions)
        assert breakdown.income == Decimal("5.00")
        assert breakdown.expense == Decimal("2.00")
        assert breakdown.balance == Decimal("13.00")


class TestBalanceReconciler:
    """Reconciliation against the in-memory gateway."""

    async def test_reconcile_persists_balance(self, storage, reconciler):
        account = await storage.save_account(make_account("100.00"))
        await storage.save_transaction(make_transaction(account, "50.00"))
        await storage.save_transaction(
            make_transaction(account, "30.00", type=TransactionType.EXPENSE)
        )
        await storage.save_transaction(
            make_transaction(account, "500.00", status=TransactionStatus.PENDING)
        )

        balance = await reconciler.reconcile(account.id)

        assert balance == Decimal("120.00")
        stored = await storage.get_account(account.id)
        assert stored.balance == Decimal("120.00")

    async def test_reconcile_is_idempotent(self, storage, reconciler):
        account = await storage.save_account(make_account("100.00"))
        await storage.save_transaction(make_transaction(account, "25.00"))

        first = await reconciler.reconcile(account.id)
        second = await reconciler.reconcile(account.id)

        assert first == second == Decimal("125.00")

    async def test_reconcile_repairs_a_wrong_cached_balance(self, storage, reconciler):
        account = await storage.save_account(make_account("100.00"))
        await storage.update_account_balance(account.id, Decimal("-999.00"))

        assert await reconciler.reconcile(account.id) == Decimal("100.00")

    async def test_reconcile_missing_account_raises(self, reconciler):
        with pytest.raises(NotFoundError):
            await reconciler.reconcile(uuid4())

    async def test_reconcile_is_audited(self, storage, reconciler, audit_storage):
        account = await storage.save_account(make_account("10.00"))
        correlation_id = uuid4()

        await reconciler.reconcile(account.id, correlation_id)

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.BALANCE_RECONCILED]
        assert events[0].entity_id == account.id
