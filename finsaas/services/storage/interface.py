"""
Abstract Storage Interface (the Persistence Gateway)

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Supabase, Google Sheets or plain memory
2. Use in-memory storage for testing
3. Keep the balance/settlement logic decoupled from the backend

The interface is intentionally small: five generic collection
primitives that each backend implements, plus typed convenience
methods built on top of them once, here.

Ownership: every write is stamped with the current user's ID, taken
from the injected SessionProvider. Read scoping is the backend's job.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from finsaas.models.audit import AuditEvent
from finsaas.models.bill import Bill, BillStatus, BillType
from finsaas.models.ledger import Account, Transaction, TransactionStatus
from finsaas.models.records import Card, Category, Client, Goal, Recurrence
from finsaas.services.session import SessionProvider


class Collection(str, Enum):
    """Named collections (tables / worksheets) in the store."""
    ACCOUNTS = "accounts"
    CARDS = "cards"
    CATEGORIES = "categories"
    CLIENTS = "clients"
    TRANSACTIONS = "transactions"
    BILLS = "bills"
    GOALS = "goals"
    RECURRENCES = "recurrences"


COLLECTION_MODELS: dict[Collection, type[BaseModel]] = {
    Collection.ACCOUNTS: Account,
    Collection.CARDS: Card,
    Collection.CATEGORIES: Category,
    Collection.CLIENTS: Client,
    Collection.TRANSACTIONS: Transaction,
    Collection.BILLS: Bill,
    Collection.GOALS: Goal,
    Collection.RECURRENCES: Recurrence,
}

# (field, descending) - the order each collection is listed in
DEFAULT_ORDER: dict[Collection, tuple[str, bool]] = {
    Collection.ACCOUNTS: ("created_at", True),
    Collection.CARDS: ("created_at", True),
    Collection.CATEGORIES: ("name", False),
    Collection.CLIENTS: ("name", False),
    Collection.TRANSACTIONS: ("date", True),
    Collection.BILLS: ("due_date", False),
    Collection.GOALS: ("created_at", True),
    Collection.RECURRENCES: ("created_at", True),
}


def collection_for(record: BaseModel) -> Collection:
    """Find the collection a record belongs in."""
    for collection, model in COLLECTION_MODELS.items():
        if isinstance(record, model):
            return collection
    raise TypeError(f"No collection stores {type(record).__name__}")


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Supabase, Google Sheets, memory)
    must implement the five collection primitives.
    """

    def __init__(self, session: SessionProvider):
        self._session = session

    async def _stamp_owner(self, record: BaseModel) -> BaseModel:
        """Return a copy of `record` owned by the current user."""
        user_id = await self._session.current_user_id()
        return record.model_copy(update={"user_id": user_id})

    # -------------------------------------------------------------------------
    # Collection primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[BaseModel]:
        """
        Read every record in a collection, optionally filtered.

        Args:
            collection: Which collection to read
            filters: Field name -> value equality filters

        Returns:
            Matching records in the collection's DEFAULT_ORDER

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def fetch_one(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[BaseModel]:
        """
        Read a single record by ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        collection: Collection,
        record: BaseModel,
    ) -> BaseModel:
        """
        Create the record, or overwrite the stored record with the same ID.

        Returns:
            The record as stored (owner stamped)

        Raises:
            StorageError: If the write fails
            SessionInvalidError: If there is no valid session
        """
        pass

    @abstractmethod
    async def delete(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted, False if none existed
        """
        pass

    @abstractmethod
    async def update_fields(
        self,
        collection: Collection,
        record_id: UUID,
        fields: dict[str, Any],
    ) -> None:
        """
        Overwrite selected fields of one stored record.

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        account_id: Optional[UUID] = None,
        status: Optional[TransactionStatus] = None,
    ) -> list[Transaction]:
        """List transactions, optionally only those of one account / status."""
        filters: dict[str, Any] = {}
        if account_id is not None:
            filters["account_id"] = account_id
        if status is not None:
            filters["status"] = status
        return await self.fetch_all(Collection.TRANSACTIONS, filters or None)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return await self.fetch_one(Collection.TRANSACTIONS, transaction_id)

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        return await self.upsert(Collection.TRANSACTIONS, transaction)

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return await self.delete(Collection.TRANSACTIONS, transaction_id)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        return await self.fetch_one(Collection.ACCOUNTS, account_id)

    async def list_accounts(self) -> list[Account]:
        return await self.fetch_all(Collection.ACCOUNTS)

    async def save_account(self, account: Account) -> Account:
        return await self.upsert(Collection.ACCOUNTS, account)

    async def delete_account(self, account_id: UUID) -> bool:
        return await self.delete(Collection.ACCOUNTS, account_id)

    async def update_account_balance(self, account_id: UUID, balance: Decimal) -> None:
        """
        Persist a recomputed balance. The only write the reconciler makes.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        await self.update_fields(Collection.ACCOUNTS, account_id, {"balance": balance})

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def get_bill(self, bill_id: UUID) -> Optional[Bill]:
        return await self.fetch_one(Collection.BILLS, bill_id)

    async def list_bills(
        self,
        bill_type: Optional[BillType] = None,
        status: Optional[BillStatus] = None,
    ) -> list[Bill]:
        """List bills as STORED (see finsaas.ledger.status for display status)."""
        filters: dict[str, Any] = {}
        if bill_type is not None:
            filters["type"] = bill_type
        if status is not None:
            filters["status"] = status
        return await self.fetch_all(Collection.BILLS, filters or None)

    async def save_bill(self, bill: Bill) -> Bill:
        return await self.upsert(Collection.BILLS, bill)

    async def delete_bill(self, bill_id: UUID) -> bool:
        return await self.delete(Collection.BILLS, bill_id)

    # -------------------------------------------------------------------------
    # Supporting records (cards, categories, clients, goals, recurrences)
    # -------------------------------------------------------------------------

    async def list_records(self, collection: Collection) -> list[BaseModel]:
        return await self.fetch_all(collection)

    async def save_record(self, record: BaseModel) -> BaseModel:
        return await self.upsert(collection_for(record), record)

    async def delete_record(self, collection: Collection, record_id: UUID) -> bool:
        return await self.delete(collection, record_id)


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one settlement).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations (a persistence failure)."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
