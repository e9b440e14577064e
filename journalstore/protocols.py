"""Collaborator protocol definitions for journalstore.

The data layer never talks to the hosted service directly. It consumes a
narrow request/response contract per collaborator:

- AuthProviderProtocol: sign in/up/out, current user, auth-change callbacks
- RemoteDatabaseProtocol: select, insert, upsert, delete on named tables
- BlobStorageProtocol: upload and public URL resolution
- StatusSinkProtocol: connection indicator and toast notifications
- SessionUIProtocol: container visibility and session-driven UI updates

The Supabase implementations live in journalstore.supabase_adapter; tests
provide in-memory implementations.

Uses @runtime_checkable for both static (mypy/pyright) and runtime (isinstance)
validation of implementations.

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from journalstore.constants import JournalConstants as c
    from journalstore.models import JournalModels
    from journalstore.types import JournalTypes as t


@runtime_checkable
class AuthProviderProtocol(Protocol):
    """Authentication collaborator.

    Implementations raise AuthenticationError for rejected credentials.
    """

    async def sign_in(self, email: str, password: str) -> JournalModels.AuthResult:
        """Sign in with email and password."""
        ...

    async def sign_up(self, email: str, password: str) -> JournalModels.AuthResult:
        """Register a new account."""
        ...

    async def sign_out(self) -> None:
        """Terminate the current session."""
        ...

    async def current_user(self) -> JournalModels.AuthUser | None:
        """Return the user of the current session, if any."""
        ...

    async def update_display_name(self, name: str) -> JournalModels.AuthUser | None:
        """Store ``name`` in the user metadata."""
        ...

    def on_auth_change(
        self, callback: Callable[[JournalModels.AuthUser | None], None]
    ) -> t.Unsubscribe:
        """Register ``callback`` for every auth state change."""
        ...


@runtime_checkable
class RemoteDatabaseProtocol(Protocol):
    """Remote table collaborator.

    Errors are raised as journalstore.exceptions types with ``retryable``
    already set by the implementation.
    """

    async def select(
        self,
        table: str,
        filters: Sequence[JournalModels.Filter] = (),
        order: JournalModels.Order | None = None,
    ) -> t.Rows:
        """Return rows matching all ``filters``."""
        ...

    async def insert(self, table: str, rows: Sequence[t.Row]) -> t.Rows:
        """Insert ``rows`` and return the inserted representation."""
        ...

    async def upsert(self, table: str, row: t.Row) -> None:
        """Insert or update ``row`` by primary key."""
        ...

    async def delete(
        self, table: str, filters: Sequence[JournalModels.Filter]
    ) -> None:
        """Delete rows matching all ``filters``."""
        ...


@runtime_checkable
class BlobStorageProtocol(Protocol):
    """File/blob collaborator."""

    async def upload(self, bucket: str, path: str, data: bytes) -> None:
        """Store ``data`` at ``path``."""
        ...

    async def public_url(self, bucket: str, path: str) -> str:
        """Resolve the public URL of ``path``."""
        ...


@runtime_checkable
class StatusSinkProtocol(Protocol):
    """UI side-effect exports for sync status."""

    def connection_status_changed(
        self, status: c.Status.ConnectionStatus, text: str
    ) -> None:
        """Update the connection indicator."""
        ...

    def show_toast(self, message: str, severity: c.Status.Severity) -> None:
        """Show a toast notification."""
        ...


@runtime_checkable
class SessionUIProtocol(Protocol):
    """UI surface driven by the session bridge.

    Rendering is out of scope; implementations toggle whatever widgets the
    host application uses.
    """

    def show_auth(self) -> None:
        """Show the auth container and hide the app container."""
        ...

    def show_app(self) -> None:
        """Show the app container and hide the auth container."""
        ...

    def set_user_display_name(self, name: str) -> None:
        """Update the header display name."""
        ...

    def update_clock(self, now: datetime) -> None:
        """Refresh the live clock."""
        ...

    def activate_page(self, page: str) -> None:
        """Mark ``page`` and its nav item active."""
        ...

    def apply_theme(self, theme: str | None) -> None:
        """Apply the saved theme."""
        ...

    def render_snapshot(self, snapshot: JournalModels.Snapshot) -> None:
        """Hand freshly loaded collections to the pages."""
        ...

    def toggle_spinner(self, *, active: bool) -> None:
        """Show or hide the auth submit spinner."""
        ...

    def set_auth_message(self, message: str) -> None:
        """Show an auth form message (empty string clears it)."""
        ...

    def set_auth_labels(self, title: str, button: str, toggle: str) -> None:
        """Update the auth form labels for the current mode."""
        ...

    def show_toast(self, message: str, severity: c.Status.Severity) -> None:
        """Show a toast notification."""
        ...
