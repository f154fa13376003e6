"""
In-memory storage backend.

Behaves like the hosted store as far as the ledger core can tell:
records are scoped to the current owner, writes return stamped copies,
reads hand back copies so callers can never mutate stored state in place.
Used by the test suite and for local experiments.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from finsaas.models.audit import AuditEvent
from finsaas.services.session import SessionProvider
from finsaas.services.storage.codec import matches, sort_records
from finsaas.services.storage.interface import (
    AuditStorageInterface,
    Collection,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed implementation of the Persistence Gateway."""

    def __init__(self, session: SessionProvider):
        super().__init__(session)
        self._tables: dict[Collection, dict[UUID, BaseModel]] = {
            collection: {} for collection in Collection
        }

    async def _owned_rows(self, collection: Collection) -> list[BaseModel]:
        owner = await self._session.current_user_id()
        return [
            record for record in self._tables[collection].values()
            if record.user_id == owner
        ]

    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[BaseModel]:
        rows = await self._owned_rows(collection)
        found = [r.model_copy(deep=True) for r in rows if matches(r, filters)]
        return sort_records(collection, found)

    async def fetch_one(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[BaseModel]:
        owner = await self._session.current_user_id()
        record = self._tables[collection].get(record_id)
        if record is None or record.user_id != owner:
            return None
        return record.model_copy(deep=True)

    async def upsert(
        self,
        collection: Collection,
        record: BaseModel,
    ) -> BaseModel:
        stored = await self._stamp_owner(record)
        self._tables[collection][stored.id] = stored.model_copy(deep=True)
        return stored

    async def delete(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        if await self.fetch_one(collection, record_id) is None:
            return False
        del self._tables[collection][record_id]
        return True

    async def update_fields(
        self,
        collection: Collection,
        record_id: UUID,
        fields: dict[str, Any],
    ) -> None:
        current = await self.fetch_one(collection, record_id)
        if current is None:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        self._tables[collection][record_id] = current.model_copy(update=fields)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        found = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(found, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        found = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(found, key=lambda e: e.timestamp)
