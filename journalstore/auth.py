"""Authentication facade.

AuthService wraps an AuthProviderProtocol and keeps the current user cached
so the data store can resolve the owner of owner-scoped rows synchronously.

Example:
    >>> auth = AuthService(backend.auth, backend.database)
    >>> result = await auth.sign_in("trader@example.com", "secret")
    >>> store = JournalDataStore(backend.database, owner_provider=auth.owner_id)

"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Self

from journalstore.constants import JournalConstants as c
from journalstore.exceptions import AuthenticationError, JournalError

if TYPE_CHECKING:
    from collections.abc import Callable

    from journalstore.models import JournalModels
    from journalstore.protocols import AuthProviderProtocol, RemoteDatabaseProtocol
    from journalstore.types import JournalTypes as t

log = logging.getLogger(__name__)

_CLOSED = object()


class AuthEventStream:
    """Async iterator of auth state changes.

    Each item is the new user, or None on sign-out. Iteration ends after
    ``close()``.
    """

    def __init__(self, service: AuthService) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._unsubscribe = service.on_auth_change(self._queue.put_nowait)
        self._closed = False

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> JournalModels.AuthUser | None:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Detach from the provider and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._queue.put_nowait(_CLOSED)


class AuthService:
    """Sign in/up/out and current-user tracking."""

    def __init__(
        self,
        provider: AuthProviderProtocol,
        database: RemoteDatabaseProtocol | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            provider: Authentication collaborator.
            database: Table collaborator for the profile row created on
                sign-up (skipped when omitted).

        """
        self._provider = provider
        self._database = database
        self._user: JournalModels.AuthUser | None = None

    @property
    def user(self) -> JournalModels.AuthUser | None:
        """Last known authenticated user."""
        return self._user

    def owner_id(self) -> str | None:
        """Owner id of the last known user (OwnerProvider)."""
        return self._user.id if self._user is not None else None

    async def sign_in(self, email: str, password: str) -> JournalModels.AuthResult:
        """Sign in with email and password.

        Returns:
            The signed-in user and its session.

        Raises:
            AuthenticationError: If the provider rejects the credentials.

        """
        result = await self._provider.sign_in(email, password)
        if result.user is None:
            raise AuthenticationError(c.Messages.AUTH_FAILED)
        self._user = result.user
        log.info("Signed in as %s", result.user.email)
        return result

    async def sign_up(self, email: str, password: str) -> JournalModels.AuthResult:
        """Register a new account and create its profile row.

        The profile insert is best-effort: a failure is logged and the
        sign-up still succeeds.

        Raises:
            AuthenticationError: If the provider rejects the sign-up.

        """
        result = await self._provider.sign_up(email, password)
        if result.user is not None and self._database is not None:
            profile = {
                c.Tables.ID_FIELD: result.user.id,
                "name": c.Entities.DEFAULT_PROFILE_NAME,
                "email": result.user.email,
            }
            try:
                await self._database.insert(c.Tables.PROFILES, [profile])
            except JournalError as e:
                log.warning("Profile creation failed for %s: %s", result.user.id, e)
        log.info("Signed up %s (confirmation pending: %s)", email, result.session is None)
        return result

    async def sign_out(self) -> None:
        """Terminate the session. Never raises."""
        try:
            await self._provider.sign_out()
        except Exception:
            log.exception("Sign out failed; clearing local session anyway")
        self._user = None

    async def current_user(self) -> JournalModels.AuthUser | None:
        """Query the provider for the current user and cache it."""
        self._user = await self._provider.current_user()
        return self._user

    async def update_display_name(self, name: str) -> JournalModels.AuthUser | None:
        """Store ``name`` as the profile display name."""
        user = await self._provider.update_display_name(name)
        if user is not None:
            self._user = user
        return user

    def on_auth_change(
        self, callback: Callable[[JournalModels.AuthUser | None], None]
    ) -> t.Unsubscribe:
        """Register ``callback`` for auth changes; the cached user is updated first."""

        def _track(user: JournalModels.AuthUser | None) -> None:
            self._user = user
            callback(user)

        return self._provider.on_auth_change(_track)

    def events(self) -> AuthEventStream:
        """Open an async stream of auth changes."""
        return AuthEventStream(self)
