"""
Shared fixtures.

Every test runs against the in-memory gateway with a fixed user, so no
test ever talks to Supabase or Google Sheets.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from finsaas.audit import AuditLogger
from finsaas.config import AppSettings
from finsaas.events import ChangeNotifier
from finsaas.ledger import BalanceReconciler
from finsaas.models import Account, AccountSource, Transaction, TransactionType
from finsaas.orchestrator import AccountFlow, BillFlow, TransactionFlow
from finsaas.services import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StaticSessionProvider,
)
from finsaas.validation import LedgerValidator


FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep a developer's .env / SUPABASE_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in ("SUPABASE_URL", "SUPABASE_KEY", "STORAGE_BACKEND"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def session(user_id):
    return StaticSessionProvider(user_id)


@pytest.fixture
def storage(session):
    return InMemoryLedgerStorage(session)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def events(notifier):
    """Every ChangeEvent published during the test, in order."""
    received = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def app_settings():
    return AppSettings(_env_file=None)


@pytest.fixture
def validator(app_settings):
    return LedgerValidator(app_settings)


@pytest.fixture
def reconciler(storage, audit_logger):
    return BalanceReconciler(storage, audit_logger)


@pytest.fixture
def transaction_flow(storage, reconciler, notifier, audit_logger, validator):
    return TransactionFlow(
        storage,
        reconciler=reconciler,
        notifier=notifier,
        audit_logger=audit_logger,
        validator=validator,
    )


@pytest.fixture
def bill_flow(storage, transaction_flow, notifier, audit_logger, validator):
    return BillFlow(
        storage,
        transaction_flow=transaction_flow,
        notifier=notifier,
        audit_logger=audit_logger,
        validator=validator,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def account_flow(storage, reconciler, notifier, audit_logger):
    return AccountFlow(
        storage,
        reconciler=reconciler,
        notifier=notifier,
        audit_logger=audit_logger,
    )


def make_account(initial="100.00", **kwargs) -> Account:
    initial = Decimal(initial)
    return Account(
        name=kwargs.pop("name", "Conta Corrente"),
        initial_balance=initial,
        balance=initial,
        **kwargs,
    )


def make_transaction(account=None, amount="10.00", **kwargs) -> Transaction:
    if account is not None:
        kwargs.setdefault("source", AccountSource(account_id=account.id))
    kwargs.setdefault("type", TransactionType.INCOME)
    kwargs.setdefault("description", "Consultoria")
    kwargs.setdefault("date", FIXED_NOW)
    return Transaction(amount=Decimal(amount), **kwargs)
