"""Services package."""

from finsaas.services.session import (
    SessionInvalidError,
    SessionProvider,
    StaticSessionProvider,
    SupabaseSessionProvider,
    is_session_error,
)
from finsaas.services.storage import (
    AuditStorageInterface,
    Collection,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    SupabaseLedgerStorage,
    create_supabase_client,
)

__all__ = [
    # Session services
    "SessionInvalidError",
    "SessionProvider",
    "StaticSessionProvider",
    "SupabaseSessionProvider",
    "is_session_error",
    # Storage services
    "AuditStorageInterface",
    "Collection",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
    "SupabaseLedgerStorage",
    "create_supabase_client",
]
