"""
Session / Identity Providers

Every record is owned by exactly one user. The storage gateways ask a
SessionProvider who the caller is and stamp that identity on writes.

This package never signs users in or out. When the auth collaborator
reports that the credential is no longer valid we raise
SessionInvalidError and let it travel, untouched, to whoever can send
the user back to the login screen.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

import structlog


logger = structlog.get_logger(__name__)

# Messages the hosted auth service uses for dead sessions
_SESSION_ERROR_PATTERN = re.compile(r"Invalid Refresh Token|JWT expired", re.IGNORECASE)
# PostgREST code for an expired/invalid JWT
_SESSION_ERROR_CODES = {"401", "PGRST301"}


class SessionInvalidError(Exception):
    """
    The caller's credential is expired or invalid.

    Deliberately NOT a StorageError: code that handles storage failures
    generically must not be able to swallow it.
    """
    pass


def is_session_error(error: BaseException) -> bool:
    """
    Classify an exception raised by the backend as a session failure.

    Matches HTTP 401 statuses, the PostgREST JWT error code and the auth
    service's expired/invalid token messages.
    """
    if isinstance(error, SessionInvalidError):
        return True

    for attr in ("status", "status_code", "statusCode", "code"):
        value = getattr(error, attr, None)
        if value is not None and str(value) in _SESSION_ERROR_CODES:
            return True

    message = getattr(error, "message", None) or str(error)
    return bool(_SESSION_ERROR_PATTERN.search(str(message)))


class SessionProvider(ABC):
    """Answers "who is the current user?" for the storage layer."""

    @abstractmethod
    async def current_user_id(self) -> UUID:
        """
        Return the authenticated owner's ID.

        Raises:
            SessionInvalidError: If there is no valid session
        """
        pass


class StaticSessionProvider(SessionProvider):
    """
    A fixed identity. Used for tests, local runs and service accounts.
    """

    def __init__(self, user_id: Optional[UUID]):
        self._user_id = user_id

    async def current_user_id(self) -> UUID:
        if self._user_id is None:
            raise SessionInvalidError("No authenticated user")
        return self._user_id

    def invalidate(self) -> None:
        """Drop the identity, as if the session had expired."""
        self._user_id = None


class SupabaseSessionProvider(SessionProvider):
    """Reads the signed-in user from a Supabase client's auth session."""

    def __init__(self, client: Any):
        self._client = client

    async def current_user_id(self) -> UUID:
        try:
            response = self._client.auth.get_user()
        except Exception as e:
            if is_session_error(e):
                logger.warning("session_invalid", error=str(e))
                raise SessionInvalidError(str(e)) from e
            raise

        user = getattr(response, "user", None) if response else None
        if user is None:
            raise SessionInvalidError("No authenticated user")
        return UUID(str(user.id))
