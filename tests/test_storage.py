"""
Tests for the storage layer: row codec, in-memory gateway, Google Sheets
and Supabase gateways (against fakes), session error detection.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from gspread.utils import ValueInputOption, a1_to_rowcol

from conftest import FIXED_NOW, make_account, make_transaction
from finsaas.models import (
    AuditEventBuilder,
    Bill,
    BillType,
    CardSource,
    Client,
    Transaction,
    TransactionStatus,
)
from finsaas.services import (
    Collection,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    NotFoundError,
    SessionInvalidError,
    StaticSessionProvider,
    StorageError,
    SupabaseLedgerStorage,
    SupabaseSessionProvider,
    is_session_error,
)
from finsaas.services.storage.codec import (
    columns_for,
    record_to_row,
    row_to_record,
    to_cell,
)
from finsaas.services.storage.google_sheets import AUDIT_COLUMNS


# =============================================================================
# Fakes
# =============================================================================

class FakeWorksheet:
    """Just enough of gspread.Worksheet for the gateway."""

    def __init__(self, header):
        self.rows = [list(header)]
        self.writes = []

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.writes.append(("append_row", value_input_option))
        self.rows.append(list(values))

    def update(self, values=None, range_name=None, value_input_option=None):
        self.writes.append(("update", value_input_option))
        row, col = a1_to_rowcol(range_name)
        for offset, values_row in enumerate(values):
            target = self.rows[row - 1 + offset]
            target[col - 1:col - 1 + len(values_row)] = values_row

    def update_cells(self, cell_list, value_input_option=None):
        self.writes.append(("update_cells", value_input_option))
        for cell in cell_list:
            self.rows[cell.row - 1][cell.col - 1] = cell.value

    def delete_rows(self, index):
        del self.rows[index - 1]


class BrokenWorksheet(FakeWorksheet):
    def append_row(self, values, value_input_option=None):
        raise RuntimeError("quota exceeded")


class FakeSheetsClient:
    def __init__(self, audit_sheet=None):
        self.sheets = {}
        self.audit_sheet = audit_sheet or FakeWorksheet(AUDIT_COLUMNS)

    def get_collection_sheet(self, collection):
        if collection not in self.sheets:
            self.sheets[collection] = FakeWorksheet(columns_for(collection))
        return self.sheets[collection]

    def get_audit_sheet(self):
        return self.audit_sheet


class FakeQuery:
    """Chainable stand-in for a PostgREST query builder."""

    def __init__(self, data=None, error=None):
        self.calls = []
        self.data = data if data is not None else []
        self.error = error

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class FakeSupabase:
    def __init__(self, query):
        self.query = query
        self.tables = []

    def table(self, name):
        self.tables.append(name)
        return self.query


class AuthError(Exception):
    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


# =============================================================================
# Codec
# =============================================================================

class TestCodec:

    def test_columns_flatten_source(self):
        columns = columns_for(Collection.TRANSACTIONS)
        assert "source" not in columns
        assert "account_id" in columns
        assert "card_id" in columns

    def test_record_to_row_account_source(self):
        account = make_account()
        row = record_to_row(make_transaction(account, "12.34"))

        assert row["account_id"] == str(account.id)
        assert row["card_id"] is None
        assert row["amount"] == "12.34"
        assert row["type"] == "receita"
        assert "source" not in row

    def test_record_to_row_card_source(self):
        card_id = uuid4()
        row = record_to_row(make_transaction(None, source=CardSource(card_id=card_id)))

        assert row["account_id"] is None
        assert row["card_id"] == str(card_id)

    def test_row_to_record_rebuilds_source(self):
        account = make_account()
        original = make_transaction(account, "12.34")

        decoded = row_to_record(Collection.TRANSACTIONS, record_to_row(original))

        assert decoded == original

    def test_float_amounts_keep_exact_value(self):
        row = record_to_row(make_transaction(make_account()))
        row["amount"] = 0.1

        decoded = row_to_record(Collection.TRANSACTIONS, row)

        assert decoded.amount == Decimal("0.1")

    def test_date_only_row_decodes_to_utc_midnight(self):
        row = record_to_row(make_transaction(make_account()))
        row["date"] = "2024-06-01"
        row["created_at"] = "2024-06-01T08:15:00"

        decoded = row_to_record(Collection.TRANSACTIONS, row)

        assert decoded.date == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert decoded.created_at.tzinfo is not None

    def test_both_account_and_card_rejected(self):
        row = record_to_row(make_transaction(make_account()))
        row["card_id"] = str(uuid4())

        with pytest.raises(ValueError):
            row_to_record(Collection.TRANSACTIONS, row)

    def test_unknown_columns_ignored(self):
        row = record_to_row(make_account())
        row["legacy_column"] = "whatever"

        assert row_to_record(Collection.ACCOUNTS, row).name == "Conta Corrente"

    def test_to_cell(self):
        assert to_cell(None) == ""
        assert to_cell(True) == "true"
        assert to_cell(Decimal("1.50")) == "1.50"
        assert to_cell(date(2024, 6, 1)) == "2024-06-01"


# =============================================================================
# In-memory gateway
# =============================================================================

class TestInMemoryStorage:

    async def test_records_are_scoped_to_owner(self, storage):
        account = await storage.save_account(make_account())
        stranger = InMemoryLedgerStorage(StaticSessionProvider(uuid4()))
        stranger._tables = storage._tables

        assert await stranger.get_account(account.id) is None
        assert await stranger.list_accounts() == []
        assert await stranger.delete_account(account.id) is False

    async def test_reads_return_copies(self, storage):
        account = await storage.save_account(make_account("10.00"))

        fetched = await storage.get_account(account.id)
        fetched.name = "Changed"

        assert (await storage.get_account(account.id)).name == "Conta Corrente"

    async def test_update_fields_missing_raises(self, storage):
        with pytest.raises(NotFoundError):
            await storage.update_account_balance(uuid4(), Decimal("1.00"))

    async def test_list_transactions_filters(self, storage):
        a = make_account(name="A")
        b = make_account(name="B")
        settled = await storage.save_transaction(make_transaction(a))
        await storage.save_transaction(make_transaction(a, status=TransactionStatus.PENDING))
        await storage.save_transaction(make_transaction(b))

        found = await storage.list_transactions(
            account_id=a.id, status=TransactionStatus.SETTLED
        )

        assert [t.id for t in found] == [settled.id]

    async def test_bills_ordered_by_due_date(self, storage):
        later = await storage.save_bill(Bill(
            type=BillType.PAYABLE, description="b", amount=Decimal("1"),
            due_date=date(2024, 7, 1),
        ))
        sooner = await storage.save_bill(Bill(
            type=BillType.PAYABLE, description="a", amount=Decimal("1"),
            due_date=date(2024, 6, 1),
        ))

        assert [b.id for b in await storage.list_bills()] == [sooner.id, later.id]

    async def test_save_record_routes_by_type(self, storage):
        client = await storage.save_record(Client(name="ACME"))

        assert [c.id for c in await storage.list_records(Collection.CLIENTS)] == [client.id]
        assert await storage.delete_record(Collection.CLIENTS, client.id) is True


# =============================================================================
# Google Sheets gateway
# =============================================================================

class TestGoogleSheetsStorage:

    @pytest.fixture
    def sheets(self):
        return FakeSheetsClient()

    @pytest.fixture
    def gateway(self, session, sheets):
        return GoogleSheetsLedgerStorage(session, sheets)

    async def test_upsert_appends_and_reads_back(self, gateway, sheets, user_id):
        account = make_account()
        tx = make_transaction(account, "50.00")

        await gateway.save_transaction(tx)

        sheet = sheets.get_collection_sheet(Collection.TRANSACTIONS)
        assert len(sheet.rows) == 2
        fetched = await gateway.get_transaction(tx.id)
        assert fetched.amount == Decimal("50.00")
        assert fetched.account_id == account.id
        assert fetched.user_id == user_id
        assert fetched.is_installment is False

    async def test_upsert_overwrites_existing_row(self, gateway, sheets):
        tx = await gateway.save_transaction(make_transaction(make_account(), "50.00"))

        await gateway.save_transaction(tx.model_copy(update={"amount": Decimal("75.00")}))

        assert len(sheets.get_collection_sheet(Collection.TRANSACTIONS).rows) == 2
        assert (await gateway.get_transaction(tx.id)).amount == Decimal("75.00")

    async def test_edits_are_one_raw_write(self, gateway, sheets):
        """Edited cells must not be reinterpreted as formulas or dates."""
        tx = await gateway.save_transaction(make_transaction(make_account(), "50.00"))
        sheet = sheets.get_collection_sheet(Collection.TRANSACTIONS)
        sheet.writes.clear()

        await gateway.save_transaction(
            tx.model_copy(update={"description": "=SUM(A1:A9)"})
        )

        assert sheet.writes == [("update", ValueInputOption.raw)]
        assert (await gateway.get_transaction(tx.id)).description == "=SUM(A1:A9)"

    async def test_balance_update_is_one_raw_write(self, gateway, sheets):
        account = await gateway.save_account(make_account("10.00"))
        sheet = sheets.get_collection_sheet(Collection.ACCOUNTS)
        sheet.writes.clear()

        await gateway.update_account_balance(account.id, Decimal("42.50"))

        assert sheet.writes == [("update_cells", ValueInputOption.raw)]

    async def test_card_funded_row_is_found(self, gateway):
        """The account_id column is empty for card-funded records."""
        card_id = uuid4()
        tx = await gateway.save_transaction(
            make_transaction(None, source=CardSource(card_id=card_id))
        )

        fetched = await gateway.get_transaction(tx.id)

        assert fetched.card_id == card_id
        assert fetched.account_id is None

    async def test_other_users_rows_are_invisible(self, gateway, sheets):
        await gateway.save_account(make_account())
        stranger = GoogleSheetsLedgerStorage(StaticSessionProvider(uuid4()), sheets)

        assert await stranger.list_accounts() == []

    async def test_filters_and_delete(self, gateway):
        account = make_account()
        keep = await gateway.save_transaction(make_transaction(account))
        drop = await gateway.save_transaction(
            make_transaction(account, status=TransactionStatus.PENDING)
        )

        settled = await gateway.list_transactions(
            account_id=account.id, status=TransactionStatus.SETTLED
        )
        assert [t.id for t in settled] == [keep.id]

        assert await gateway.delete_transaction(drop.id) is True
        assert await gateway.delete_transaction(drop.id) is False

    async def test_update_balance(self, gateway):
        account = await gateway.save_account(make_account("10.00"))

        await gateway.update_account_balance(account.id, Decimal("42.50"))

        assert (await gateway.get_account(account.id)).balance == Decimal("42.50")

    async def test_update_missing_row_raises_not_found(self, gateway):
        with pytest.raises(NotFoundError):
            await gateway.update_account_balance(uuid4(), Decimal("1.00"))

    async def test_malformed_row_raises(self, gateway, sheets, user_id):
        sheet = sheets.get_collection_sheet(Collection.ACCOUNTS)
        header = sheet.rows[0]
        bad = {"id": str(uuid4()), "user_id": str(user_id), "name": "X", "type": "poupanca"}
        sheet.append_row([bad.get(column, "") for column in header])

        with pytest.raises(StorageError):
            await gateway.list_accounts()

    async def test_expired_session_on_read(self, gateway, session):
        session.invalidate()

        with pytest.raises(SessionInvalidError):
            await gateway.list_accounts()


class TestGoogleSheetsAuditStorage:

    async def test_append_and_query(self):
        storage = GoogleSheetsAuditStorage(FakeSheetsClient())
        correlation_id = uuid4()
        bill_id = uuid4()
        event = AuditEventBuilder.bill_settled(bill_id, uuid4(), "pago", correlation_id)

        assert await storage.append_event(event) is True

        [found] = await storage.get_events_by_correlation_id(correlation_id)
        assert found.event_id == event.event_id
        assert found.details["status"] == "pago"
        assert found.is_user_action is True
        assert [e.event_id for e in await storage.get_events_by_entity("bill", bill_id)] == [
            event.event_id
        ]

    async def test_write_failure_returns_false(self):
        storage = GoogleSheetsAuditStorage(
            FakeSheetsClient(audit_sheet=BrokenWorksheet(AUDIT_COLUMNS))
        )
        event = AuditEventBuilder.bill_deleted(uuid4(), None)

        assert await storage.append_event(event) is False


# =============================================================================
# Supabase gateway
# =============================================================================

def transaction_row(user_id, account_id, amount=0.1, **extra):
    row = {
        "id": str(uuid4()),
        "user_id": str(user_id),
        "type": "receita",
        "status": "pago",
        "amount": amount,
        "date": FIXED_NOW.isoformat(),
        "description": "Consultoria",
        "account_id": str(account_id),
        "card_id": None,
        "category_id": None,
        "client_id": None,
        "is_installment": False,
        "installment_id": None,
        "current_installment": None,
        "total_installments": None,
    }
    row.update(extra)
    return row


class TestSupabaseStorage:

    async def test_fetch_all_filters_orders_and_decodes(self, session, user_id):
        account_id = uuid4()
        query = FakeQuery(data=[transaction_row(user_id, account_id, amount=0.1)])
        gateway = SupabaseLedgerStorage(session, FakeSupabase(query))

        [tx] = await gateway.list_transactions(
            account_id=account_id, status=TransactionStatus.SETTLED
        )

        assert isinstance(tx, Transaction)
        assert tx.amount == Decimal("0.1")
        assert tx.account_id == account_id
        assert ("eq", ("account_id", str(account_id)), {}) in query.calls
        assert ("eq", ("status", "pago"), {}) in query.calls
        assert ("order", ("date",), {"desc": True}) in query.calls

    async def test_fetch_one_missing_returns_none(self, session):
        gateway = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(data=[])))

        assert await gateway.get_account(uuid4()) is None

    async def test_upsert_sends_flat_stamped_row(self, session, user_id):
        query = FakeQuery()
        client = FakeSupabase(query)
        gateway = SupabaseLedgerStorage(session, client)
        account = make_account()

        stored = await gateway.save_transaction(make_transaction(account, "9.99"))

        assert client.tables == ["transactions"]
        [(name, (row,), _)] = query.calls
        assert name == "upsert"
        assert row["user_id"] == str(user_id)
        assert row["account_id"] == str(account.id)
        assert "source" not in row
        assert stored.user_id == user_id

    async def test_update_without_match_raises_not_found(self, session):
        gateway = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(data=[])))

        with pytest.raises(NotFoundError):
            await gateway.update_account_balance(uuid4(), Decimal("1.00"))

    async def test_delete_reports_whether_a_row_went(self, session):
        gone = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(data=[{"id": "x"}])))
        nothing = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(data=[])))

        assert await gone.delete_bill(uuid4()) is True
        assert await nothing.delete_bill(uuid4()) is False

    @pytest.mark.parametrize("error", [
        AuthError("JWT expired"),
        AuthError("Invalid Refresh Token: Refresh Token Not Found"),
        AuthError("unauthorized", status=401),
    ])
    async def test_auth_failures_become_session_invalid(self, session, error):
        gateway = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(error=error)))

        with pytest.raises(SessionInvalidError):
            await gateway.list_accounts()

    async def test_other_failures_become_storage_errors(self, session):
        error = AuthError("connection reset", status=503)
        gateway = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(error=error)))

        with pytest.raises(StorageError) as excinfo:
            await gateway.list_accounts()

        assert not isinstance(excinfo.value, NotFoundError)
        assert excinfo.value.__cause__ is error

    async def test_malformed_row_raises_storage_error(self, session, user_id):
        row = transaction_row(user_id, uuid4(), card_id=str(uuid4()))
        gateway = SupabaseLedgerStorage(session, FakeSupabase(FakeQuery(data=[row])))

        with pytest.raises(StorageError):
            await gateway.list_transactions()


# =============================================================================
# Sessions
# =============================================================================

class TestSessions:

    def test_is_session_error(self):
        assert is_session_error(AuthError("JWT expired")) is True
        assert is_session_error(AuthError("x", status=401)) is True
        assert is_session_error(SessionInvalidError("gone")) is True
        assert is_session_error(AuthError("timeout", status=500)) is False
        assert is_session_error(StorageError("disk full")) is False

    def test_session_invalid_is_not_a_storage_error(self):
        assert not issubclass(SessionInvalidError, StorageError)

    async def test_static_provider(self, user_id):
        provider = StaticSessionProvider(user_id)
        assert await provider.current_user_id() == user_id

        provider.invalidate()
        with pytest.raises(SessionInvalidError):
            await provider.current_user_id()

    async def test_supabase_provider_reads_user(self):
        user_id = uuid4()
        auth = SimpleNamespace(
            get_user=lambda: SimpleNamespace(user=SimpleNamespace(id=str(user_id)))
        )
        provider = SupabaseSessionProvider(SimpleNamespace(auth=auth))

        assert await provider.current_user_id() == user_id

    async def test_supabase_provider_maps_expired_token(self):
        def get_user():
            raise AuthError("Invalid Refresh Token: Already Used")

        provider = SupabaseSessionProvider(SimpleNamespace(auth=SimpleNamespace(get_user=get_user)))

        with pytest.raises(SessionInvalidError):
            await provider.current_user_id()

    async def test_supabase_provider_without_user(self):
        auth = SimpleNamespace(get_user=lambda: SimpleNamespace(user=None))
        provider = SupabaseSessionProvider(SimpleNamespace(auth=auth))

        with pytest.raises(SessionInvalidError):
            await provider.current_user_id()
