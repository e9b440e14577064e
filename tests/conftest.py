"""Test configuration and fixtures.

NO MOCKING of the units under test: every collaborator Protocol has an
in-memory implementation here that records calls and can be programmed to
fail, block or run slowly.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio
from dotenv import load_dotenv

from journalstore.auth import AuthService
from journalstore.constants import JournalConstants as c
from journalstore.datastore import JournalDataStore
from journalstore.exceptions import AuthenticationError
from journalstore.models import JournalModels
from journalstore.settings import JournalSettings
from journalstore.status import SyncStatusReporter
from journalstore.storage import PreferenceStore
from tests.constants import TestConstants as tc

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Sequence

TESTS_DIR = Path(__file__).parent
PROJECT_ROOT = TESTS_DIR.parent

# Optional overrides for local runs; defaults below never hit the network
load_dotenv(PROJECT_ROOT / ".env.test")

FilterOp = c.Query.FilterOp


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


def _matches(row: dict[str, Any], flt: JournalModels.Filter) -> bool:
    value = row.get(flt.column)
    if flt.op == FilterOp.EQ:
        return value == flt.value
    if flt.op == FilterOp.NEQ:
        return value != flt.value
    if flt.op == FilterOp.GTE:
        return value is not None and value >= flt.value
    if flt.op == FilterOp.LTE:
        return value is not None and value <= flt.value
    return value in (flt.value or [])


class FakeDatabase:
    """In-memory RemoteDatabaseProtocol.

    Attributes:
        tables: Rows per table.
        calls: (method, table, payload) per remote call, including failures.
        failures: Errors raised by the next calls, consumed in order.
        gate: When set, every call blocks until the event is set.
        latency: Seconds every call sleeps before answering.

    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: list[BaseException] = []
        self.gate: asyncio.Event | None = None
        self.latency = 0.0

    def fail_next(self, *errors: BaseException) -> None:
        self.failures.extend(errors)

    def count(self, method: str, table: str | None = None) -> int:
        return sum(
            1 for m, t, _ in self.calls if m == method and (table is None or t == table)
        )

    async def _enter(self, method: str, table: str, payload: Any) -> None:
        self.calls.append((method, table, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.failures:
            raise self.failures.pop(0)

    async def select(
        self,
        table: str,
        filters: Sequence[JournalModels.Filter] = (),
        order: JournalModels.Order | None = None,
    ) -> list[dict[str, Any]]:
        await self._enter("select", table, (list(filters), order))
        rows = [
            dict(row)
            for row in self.tables.get(table, [])
            if all(_matches(row, f) for f in filters)
        ]
        if order is not None:
            rows.sort(key=lambda r: r.get(order.column) or "", reverse=not order.ascending)
        return rows

    async def insert(self, table: str, rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        await self._enter("insert", table, list(rows))
        stored = [dict(row) for row in rows]
        self.tables.setdefault(table, []).extend(stored)
        return [dict(row) for row in stored]

    async def upsert(self, table: str, row: dict[str, Any]) -> None:
        await self._enter("upsert", table, dict(row))
        rows = self.tables.setdefault(table, [])
        for i, existing in enumerate(rows):
            if existing.get("id") == row.get("id"):
                rows[i] = dict(row)
                return
        rows.append(dict(row))

    async def delete(self, table: str, filters: Sequence[JournalModels.Filter]) -> None:
        await self._enter("delete", table, list(filters))
        self.tables[table] = [
            row
            for row in self.tables.get(table, [])
            if not all(_matches(row, f) for f in filters)
        ]


class FakeStorage:
    """In-memory BlobStorageProtocol."""

    def __init__(self) -> None:
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.failures: list[BaseException] = []

    async def upload(self, bucket: str, path: str, data: bytes) -> None:
        if self.failures:
            raise self.failures.pop(0)
        self.blobs[bucket, path] = data

    async def public_url(self, bucket: str, path: str) -> str:
        return f"https://storage.test/{bucket}/{path}"


class FakeAuthProvider:
    """In-memory AuthProviderProtocol with manual event emission."""

    def __init__(self) -> None:
        self.accounts: dict[str, str] = {tc.Users.EMAIL: tc.Users.PASSWORD}
        self.user: JournalModels.AuthUser | None = None
        self.callbacks: list[Callable[[JournalModels.AuthUser | None], None]] = []
        self.sign_out_error: BaseException | None = None
        self.confirm_email = True
        self.sign_out_calls = 0

    def _user_for(self, email: str) -> JournalModels.AuthUser:
        return JournalModels.AuthUser(
            id=tc.Users.OWNER_ID, email=email, display_name=tc.Users.NAME
        )

    async def sign_in(self, email: str, password: str) -> JournalModels.AuthResult:
        if self.accounts.get(email) != password:
            raise AuthenticationError("Invalid login credentials")
        self.user = self._user_for(email)
        self.emit(self.user)
        return JournalModels.AuthResult(
            user=self.user, session=JournalModels.AuthSession(access_token="token")
        )

    async def sign_up(self, email: str, password: str) -> JournalModels.AuthResult:
        if email in self.accounts:
            raise AuthenticationError("User already registered")
        self.accounts[email] = password
        user = JournalModels.AuthUser(id="new-user", email=email)
        session = None if self.confirm_email else JournalModels.AuthSession()
        return JournalModels.AuthResult(user=user, session=session)

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.user = None
        self.emit(None)

    async def current_user(self) -> JournalModels.AuthUser | None:
        return self.user

    async def update_display_name(self, name: str) -> JournalModels.AuthUser | None:
        if self.user is None:
            return None
        self.user = self.user.model_copy(update={"display_name": name})
        return self.user

    def on_auth_change(
        self, callback: Callable[[JournalModels.AuthUser | None], None]
    ) -> Callable[[], None]:
        self.callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self.callbacks:
                self.callbacks.remove(callback)

        return _unsubscribe

    def emit(self, user: JournalModels.AuthUser | None) -> None:
        for callback in list(self.callbacks):
            callback(user)


class RecordingSink:
    """StatusSinkProtocol that records everything it receives."""

    def __init__(self) -> None:
        self.statuses: list[tuple[c.Status.ConnectionStatus, str]] = []
        self.toasts: list[tuple[str, c.Status.Severity]] = []

    def connection_status_changed(self, status: c.Status.ConnectionStatus, text: str) -> None:
        self.statuses.append((status, text))

    def show_toast(self, message: str, severity: c.Status.Severity) -> None:
        self.toasts.append((message, severity))

    def toasts_of(self, severity: c.Status.Severity) -> list[str]:
        return [m for m, s in self.toasts if s == severity]


class FakeUI:
    """SessionUIProtocol that records every call as (name, args)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.visible = "none"
        self.display_names: list[str] = []
        self.ticks: list[datetime] = []
        self.snapshots: list[JournalModels.Snapshot] = []
        self.spinner: list[bool] = []
        self.auth_message = ""
        self.labels: tuple[str, str, str] | None = None
        self.toasts: list[tuple[str, c.Status.Severity]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def show_auth(self) -> None:
        self.calls.append(("show_auth", ()))
        self.visible = "auth"

    def show_app(self) -> None:
        self.calls.append(("show_app", ()))
        self.visible = "app"

    def set_user_display_name(self, name: str) -> None:
        self.calls.append(("set_user_display_name", (name,)))
        self.display_names.append(name)

    def update_clock(self, now: datetime) -> None:
        self.ticks.append(now)

    def activate_page(self, page: str) -> None:
        self.calls.append(("activate_page", (page,)))

    def apply_theme(self, theme: str | None) -> None:
        self.calls.append(("apply_theme", (theme,)))

    def render_snapshot(self, snapshot: JournalModels.Snapshot) -> None:
        self.calls.append(("render_snapshot", ()))
        self.snapshots.append(snapshot)

    def toggle_spinner(self, *, active: bool) -> None:
        self.spinner.append(active)

    def set_auth_message(self, message: str) -> None:
        self.auth_message = message

    def set_auth_labels(self, title: str, button: str, toggle: str) -> None:
        self.labels = (title, button, toggle)

    def show_toast(self, message: str, severity: c.Status.Severity) -> None:
        self.toasts.append((message, severity))


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> JournalSettings:
    """Settings with unit-test sized delays and deadlines."""
    return JournalSettings(
        supabase_url="",
        supabase_key="",
        timeout_fetch=tc.Timing.DEADLINE,
        timeout_write=tc.Timing.DEADLINE,
        timeout_bulk=tc.Timing.DEADLINE,
        timeout_partial_exit=tc.Timing.DEADLINE,
        retry_initial_delay=tc.Timing.RETRY_DELAY,
        read_retry_initial_delay=tc.Timing.RETRY_DELAY,
        clock_interval=tc.Timing.CLOCK_INTERVAL,
    )


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def blob_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def auth_provider() -> FakeAuthProvider:
    return FakeAuthProvider()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def reporter(sink: RecordingSink) -> SyncStatusReporter:
    reporter = SyncStatusReporter()
    reporter.add_sink(sink)
    return reporter


@pytest.fixture
def owner() -> dict[str, str | None]:
    """Mutable owner holder; set ``owner["id"] = None`` to log out."""
    return {"id": tc.Users.OWNER_ID}


@pytest_asyncio.fixture
async def store(
    database: FakeDatabase,
    blob_storage: FakeStorage,
    settings: JournalSettings,
    reporter: SyncStatusReporter,
    owner: dict[str, str | None],
) -> AsyncGenerator[JournalDataStore]:
    """Started data store over the in-memory collaborators."""
    async with JournalDataStore(
        database,
        storage=blob_storage,
        owner_provider=lambda: owner["id"],
        settings=settings,
        reporter=reporter,
    ) as started:
        yield started


@pytest.fixture
def auth_service(auth_provider: FakeAuthProvider, database: FakeDatabase) -> AuthService:
    return AuthService(auth_provider, database)


@pytest.fixture
def preferences(tmp_path: Path) -> PreferenceStore:
    return PreferenceStore(tmp_path / "preferences.json")


@pytest.fixture
def ui() -> FakeUI:
    return FakeUI()
