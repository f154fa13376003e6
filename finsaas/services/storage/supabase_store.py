"""
Supabase Storage Implementation

The hosted Postgres backend. Each collection is a table whose columns
match the flat row layout of finsaas.services.storage.codec.

Read scoping is enforced by the database's row-level security policies:
a session only ever sees its own rows. Writes stamp user_id explicitly.

Auth failures surfacing from any call (HTTP 401, expired JWT, invalid
refresh token) are raised as SessionInvalidError; every other backend
failure becomes a StorageError.
"""

from typing import Any, NoReturn, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel
from supabase import Client, create_client

from finsaas.config import SupabaseSettings, get_settings
from finsaas.services.session import (
    SessionInvalidError,
    SessionProvider,
    is_session_error,
)
from finsaas.services.storage.codec import (
    encode_value,
    record_to_row,
    row_to_record,
)
from finsaas.services.storage.interface import (
    DEFAULT_ORDER,
    Collection,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


def create_supabase_client(settings: Optional[SupabaseSettings] = None) -> Client:
    """Create a Supabase client from configuration."""
    settings = settings or get_settings().supabase
    return create_client(settings.url, settings.key)


class SupabaseLedgerStorage(LedgerStorageInterface):
    """Supabase (PostgREST) implementation of the Persistence Gateway."""

    def __init__(self, session: SessionProvider, client: Client):
        super().__init__(session)
        self._client = client

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        """Translate a backend exception into the storage error taxonomy."""
        if is_session_error(error):
            logger.warning("session_invalid", operation=operation, error=str(error))
            raise SessionInvalidError(str(error)) from error
        logger.error("supabase_error", operation=operation, error=str(error))
        raise StorageError(f"Failed to {operation}: {error}") from error

    def _decode_rows(self, collection: Collection, rows: list[dict]) -> list[BaseModel]:
        try:
            return [row_to_record(collection, row) for row in rows]
        except Exception as e:
            raise StorageError(f"Malformed {collection.value} row: {e}") from e

    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[BaseModel]:
        field, descending = DEFAULT_ORDER[collection]
        try:
            query = self._client.table(collection.value).select("*")
            for key, value in (filters or {}).items():
                query = query.eq(key, encode_value(value))
            response = query.order(field, desc=descending).execute()
        except Exception as e:
            self._fail(f"list {collection.value}", e)
        return self._decode_rows(collection, response.data or [])

    async def fetch_one(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[BaseModel]:
        try:
            response = (
                self._client.table(collection.value)
                .select("*")
                .eq("id", str(record_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            self._fail(f"get {collection.value} record", e)
        records = self._decode_rows(collection, response.data or [])
        return records[0] if records else None

    async def upsert(
        self,
        collection: Collection,
        record: BaseModel,
    ) -> BaseModel:
        stored = await self._stamp_owner(record)
        try:
            self._client.table(collection.value).upsert(record_to_row(stored)).execute()
        except Exception as e:
            self._fail(f"save {collection.value} record", e)
        return stored

    async def delete(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        try:
            response = (
                self._client.table(collection.value)
                .delete()
                .eq("id", str(record_id))
                .execute()
            )
        except Exception as e:
            self._fail(f"delete {collection.value} record", e)
        return bool(response.data)

    async def update_fields(
        self,
        collection: Collection,
        record_id: UUID,
        fields: dict[str, Any],
    ) -> None:
        payload = {key: encode_value(value) for key, value in fields.items()}
        try:
            response = (
                self._client.table(collection.value)
                .update(payload)
                .eq("id", str(record_id))
                .execute()
            )
        except Exception as e:
            self._fail(f"update {collection.value} record", e)
        if not response.data:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
