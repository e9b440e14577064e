"""Supabase implementations of the collaborator protocols.

Wraps the async supabase-py client (PostgREST tables, GoTrue auth, storage)
behind AuthProviderProtocol, RemoteDatabaseProtocol and BlobStorageProtocol,
translating provider failures into the journalstore error hierarchy with the
``retryable`` flag already decided.

Hierarchy Level: 3
- Imports: settings, constants, exceptions, models
- Used by: __main__.py (wiring), host applications

Usage:
    >>> backend = await SupabaseBackend.connect(JournalSettings())
    >>> store = JournalDataStore(backend.database, storage=backend.storage)
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

import httpx
from postgrest.exceptions import APIError
from supabase import AuthError, acreate_client

from journalstore.constants import JournalConstants as c
from journalstore.exceptions import (
    AuthenticationError,
    JournalError,
    NoConnectionError,
    RemoteError,
)
from journalstore.models import JournalModels

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from supabase import AsyncClient

    from journalstore.settings import JournalSettings
    from journalstore.types import JournalTypes as t

log = logging.getLogger(__name__)

FilterOp = c.Query.FilterOp


def is_retryable_code(code: str | None, status: int | None = None) -> bool:
    """Decide whether a PostgREST error code / HTTP status may succeed later."""
    if status in c.Resilience.NON_RETRYABLE_HTTP_STATUS:
        return False
    if not code:
        return True
    if code in c.Resilience.NON_RETRYABLE_CODES:
        return False
    return not code.startswith(c.Resilience.NON_RETRYABLE_CODE_PREFIXES)


def translate_error(error: Exception) -> JournalError:
    """Map a provider exception onto the journalstore hierarchy."""
    if isinstance(error, JournalError):
        return error
    if isinstance(error, APIError):
        code = str(error.code) if error.code else None
        return RemoteError(
            error.message or str(error),
            code=code,
            retryable=is_retryable_code(code),
        )
    if isinstance(error, AuthError):
        status = getattr(error, "status", None)
        return AuthenticationError(
            error.message or c.Messages.AUTH_FAILED,
            code=getattr(error, "code", None),
            status=status,
        )
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return RemoteError(
            str(error), status=status, retryable=is_retryable_code(None, status)
        )
    if isinstance(error, httpx.TransportError):
        return NoConnectionError(str(error) or c.Messages.NOT_CONNECTED, retryable=True)
    return RemoteError(str(error))


def apply_filters(query: Any, filters: Sequence[JournalModels.Filter]) -> Any:
    """Chain ``filters`` onto a PostgREST request builder."""
    for flt in filters:
        if flt.op == FilterOp.IN:
            query = query.in_(flt.column, flt.value)
        else:
            query = getattr(query, flt.op.value)(flt.column, flt.value)
    return query


class SupabaseDatabase:
    """RemoteDatabaseProtocol over ``client.table(...)``."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def _execute(self, query: Any) -> t.Rows:
        try:
            response = await query.execute()
        except Exception as e:
            raise translate_error(e) from e
        return list(response.data or [])

    async def select(
        self,
        table: str,
        filters: Sequence[JournalModels.Filter] = (),
        order: JournalModels.Order | None = None,
    ) -> t.Rows:
        query = apply_filters(self._client.table(table).select("*"), filters)
        if order is not None:
            query = query.order(order.column, desc=not order.ascending)
        return await self._execute(query)

    async def insert(self, table: str, rows: Sequence[t.Row]) -> t.Rows:
        return await self._execute(self._client.table(table).insert(list(rows)))

    async def upsert(self, table: str, row: t.Row) -> None:
        await self._execute(self._client.table(table).upsert(row))

    async def delete(
        self, table: str, filters: Sequence[JournalModels.Filter]
    ) -> None:
        await self._execute(apply_filters(self._client.table(table).delete(), filters))


class SupabaseStorage:
    """BlobStorageProtocol over ``client.storage``."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def upload(self, bucket: str, path: str, data: bytes) -> None:
        try:
            await self._client.storage.from_(bucket).upload(path, data)
        except Exception as e:
            raise translate_error(e) from e

    async def public_url(self, bucket: str, path: str) -> str:
        url = self._client.storage.from_(bucket).get_public_url(path)
        if inspect.isawaitable(url):
            url = await url
        return str(url)


class SupabaseAuthProvider:
    """AuthProviderProtocol over ``client.auth`` (GoTrue)."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    @staticmethod
    def _result(response: Any) -> JournalModels.AuthResult:
        session = getattr(response, "session", None)
        return JournalModels.AuthResult(
            user=JournalModels.AuthUser.from_provider(getattr(response, "user", None)),
            session=(
                JournalModels.AuthSession.model_validate(session)
                if session is not None
                else None
            ),
        )

    async def sign_in(self, email: str, password: str) -> JournalModels.AuthResult:
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise translate_error(e) from e
        return self._result(response)

    async def sign_up(self, email: str, password: str) -> JournalModels.AuthResult:
        try:
            response = await self._client.auth.sign_up(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise translate_error(e) from e
        return self._result(response)

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except Exception as e:
            raise translate_error(e) from e

    async def current_user(self) -> JournalModels.AuthUser | None:
        try:
            session = await self._client.auth.get_session()
        except Exception as e:
            raise translate_error(e) from e
        if session is None:
            return None
        return JournalModels.AuthUser.from_provider(session.user)

    async def update_display_name(self, name: str) -> JournalModels.AuthUser | None:
        try:
            response = await self._client.auth.update_user({"data": {"name": name}})
        except Exception as e:
            raise translate_error(e) from e
        return JournalModels.AuthUser.from_provider(getattr(response, "user", None))

    def on_auth_change(
        self, callback: Callable[[JournalModels.AuthUser | None], None]
    ) -> t.Unsubscribe:
        def _listener(event: str, session: Any) -> None:
            log.debug("Auth state change: %s", event)
            user = getattr(session, "user", None) if session is not None else None
            callback(JournalModels.AuthUser.from_provider(user))

        subscription = self._client.auth.on_auth_state_change(_listener)
        return subscription.unsubscribe


class SupabaseBackend:
    """The three Supabase collaborators sharing one async client."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client
        self.database = SupabaseDatabase(client)
        self.storage = SupabaseStorage(client)
        self.auth = SupabaseAuthProvider(client)

    @classmethod
    async def connect(cls, settings: JournalSettings) -> SupabaseBackend:
        """Create the async client from ``settings``.

        Raises:
            NoConnectionError: If the URL or key is not configured.

        """
        if not settings.has_credentials:
            msg = "Supabase URL and key are not configured (JOURNAL_SUPABASE_URL/KEY)"
            raise NoConnectionError(msg)
        client = await acreate_client(settings.supabase_url, settings.supabase_key)
        log.info("Supabase client created for %s", settings.supabase_url)
        return cls(client)
