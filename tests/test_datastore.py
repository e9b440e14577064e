"""Tests for JournalDataStore and the resource facades.

Uses the in-memory collaborators from conftest.py; retry delays are a few
milliseconds so exhaustion paths run for real.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from journalstore.constants import JournalConstants as c
from journalstore.datastore import JournalDataStore, operation_key
from journalstore.exceptions import (
    AuthRequiredError,
    DatabaseError,
    NoConnectionError,
    RemoteError,
)
from journalstore.status import SyncStatusReporter
from tests.conftest import FakeDatabase, FakeStorage, RecordingSink
from tests.constants import TestConstants as tc

if TYPE_CHECKING:
    from journalstore.settings import JournalSettings

ConnectionStatus = c.Status.ConnectionStatus
Severity = c.Status.Severity
Tables = c.Tables

pytestmark = pytest.mark.asyncio


def _retryable() -> RemoteError:
    return RemoteError("503 Service Unavailable", status=503)


def _seed_trades(database: FakeDatabase) -> None:
    database.tables[Tables.TRADES] = [
        {"id": "2", "entry_date": "2024-03-05", "exit_date": "2024-03-06", "user_id": tc.Users.OWNER_ID},
        {"id": "1", "entry_date": "2024-03-01", "exit_date": "2024-03-02", "user_id": tc.Users.OWNER_ID},
        {"id": "3", "entry_date": "2024-04-01", "exit_date": "2024-04-09", "user_id": tc.Users.OWNER_ID},
    ]


class TestOperationKey:
    async def test_format(self) -> None:
        key = operation_key(c.Operation.Verb.UPSERT, c.Operation.Resource.TRADE, 42)
        assert key == "upsert-trade-42"


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:
    async def test_start_requires_database(self, settings: JournalSettings) -> None:
        with pytest.raises(NoConnectionError):
            await JournalDataStore(settings=settings).start()

    async def test_list_before_start_returns_empty(
        self, database: FakeDatabase, settings: JournalSettings
    ) -> None:
        reporter = SyncStatusReporter()
        sink = RecordingSink()
        reporter.add_sink(sink)
        store = JournalDataStore(database, settings=settings, reporter=reporter)

        assert await store.trades.list() == []
        assert database.calls == []
        assert store.status == ConnectionStatus.DISCONNECTED
        assert sink.toasts_of(Severity.ERROR) == [c.Messages.CONNECTION_ISSUE]

    async def test_write_before_start_not_retried(
        self, database: FakeDatabase, settings: JournalSettings
    ) -> None:
        store = JournalDataStore(database, settings=settings)

        with pytest.raises(DatabaseError) as info:
            await store.trades.upsert(tc.Rows.TRADE)

        assert info.value.kind == c.Resilience.ErrorKind.NO_CONNECTION
        assert isinstance(info.value.__cause__, NoConnectionError)

    async def test_context_manager(
        self, database: FakeDatabase, settings: JournalSettings
    ) -> None:
        async with JournalDataStore(database, settings=settings) as store:
            assert store.is_started
        assert not store.is_started


# =============================================================================
# LIST
# =============================================================================


class TestList:
    async def test_success_marks_connected(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        _seed_trades(database)

        rows = await store.trades.list()

        assert [r["id"] for r in rows] == ["1", "2", "3"]
        assert store.status == ConnectionStatus.CONNECTED
        assert store.reporter.last_sync_time is not None
        assert sink.toasts == []

    async def test_exhaustion_returns_empty_with_one_notification(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        database.fail_next(_retryable(), _retryable(), _retryable())

        rows = await store.trades.list()

        assert rows == []
        assert database.count("select", Tables.TRADES) == 3
        assert store.status == ConnectionStatus.DISCONNECTED
        assert sink.toasts == [
            ("Unable to load trades - please check your connection", Severity.ERROR)
        ]

    async def test_recovers_within_budget(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        database.tables[Tables.LEDGER] = [dict(tc.Rows.LEDGER_ENTRY)]
        database.fail_next(_retryable())

        rows = await store.ledger.list()

        assert rows == [tc.Rows.LEDGER_ENTRY]
        assert database.count("select") == 2
        assert store.status == ConnectionStatus.CONNECTED
        assert sink.toasts == []

    async def test_timeout_not_retried(
        self, database: FakeDatabase, settings: JournalSettings, sink: RecordingSink
    ) -> None:
        reporter = SyncStatusReporter()
        reporter.add_sink(sink)
        fast = settings.model_copy(update={"timeout_fetch": tc.Timing.SHORT_DEADLINE})
        database.latency = tc.Timing.SLOW_CALL

        async with JournalDataStore(database, settings=fast, reporter=reporter) as store:
            rows = await store.trades.list()

        assert rows == []
        assert database.count("select") == 1
        assert sink.toasts == [(c.Messages.TIMEOUT, Severity.ERROR)]


# =============================================================================
# WRITES
# =============================================================================


class TestWrites:
    async def test_upsert_strips_ui_fields(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        assert await store.trades.upsert(tc.Rows.TRADE) is True

        stored = database.tables[Tables.TRADES]
        assert len(stored) == 1
        assert "status" not in stored[0]
        assert stored[0]["pnl"] == 125.0
        assert store.status == ConnectionStatus.CONNECTED
        assert sink.toasts == [("Trade saved successfully", Severity.SUCCESS)]

    async def test_sequential_upserts_idempotent(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        await store.trades.upsert(tc.Rows.TRADE)
        await store.trades.upsert(tc.Rows.TRADE)

        assert database.count("upsert") == 2
        assert len(database.tables[Tables.TRADES]) == 1

    async def test_upsert_requires_id(self, store: JournalDataStore) -> None:
        with pytest.raises(ValueError, match="id"):
            await store.trades.upsert({"asset": "ES"})

    async def test_upsert_exhaustion_raises_database_error(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        database.fail_next(_retryable(), _retryable(), _retryable())

        with pytest.raises(DatabaseError) as info:
            await store.trades.upsert(tc.Rows.TRADE)

        assert info.value.message == "Database error: 503 Service Unavailable"
        assert isinstance(info.value.__cause__, RemoteError)
        assert database.count("upsert") == 3
        assert store.status == ConnectionStatus.DISCONNECTED
        assert sink.toasts == [("Failed to save trade - please try again", Severity.ERROR)]
        assert not store.queue.is_pending("upsert-trade-42")

    async def test_non_retryable_single_attempt(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.fail_next(RemoteError("permission denied", code="42501", retryable=False))

        with pytest.raises(DatabaseError, match="permission denied"):
            await store.ledger.delete("l1")

        assert database.count("delete") == 1

    async def test_concurrent_upserts_share_one_call(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        database.gate = asyncio.Event()

        tasks = [
            asyncio.create_task(store.trades.upsert(tc.Rows.TRADE)) for _ in range(3)
        ]
        await asyncio.sleep(0)
        assert store.queue.is_pending("upsert-trade-42")
        assert store.queue.waiter_count("upsert-trade-42") == 2

        database.gate.set()
        results = await asyncio.gather(*tasks)

        assert results == [True, True, True]
        assert database.count("upsert") == 1
        assert sink.toasts_of(Severity.SUCCESS) == ["Trade saved successfully"]

    async def test_concurrent_failure_shared(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.gate = asyncio.Event()
        database.fail_next(RemoteError("denied", retryable=False))

        tasks = [asyncio.create_task(store.trades.delete("7")) for _ in range(2)]
        await asyncio.sleep(0)
        database.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, DatabaseError) for r in results)
        assert database.count("delete") == 1

    async def test_back_to_back_deletes_run_twice(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.tables[Tables.TRADES] = [{"id": "7"}]

        assert await store.trades.delete("7") is True
        assert await store.trades.delete("7") is True

        assert database.count("delete") == 2
        assert database.tables[Tables.TRADES] == []

    async def test_ledger_messages(
        self, store: JournalDataStore, sink: RecordingSink
    ) -> None:
        await store.ledger.upsert(tc.Rows.LEDGER_ENTRY)
        await store.ledger.delete("l1")

        assert sink.toasts_of(Severity.SUCCESS) == [
            "Ledger entry saved successfully",
            "Ledger entry deleted successfully",
        ]


# =============================================================================
# TRADE EXTRAS
# =============================================================================


class TestTradeBulk:
    async def test_delete_many_rejects_empty(self, store: JournalDataStore) -> None:
        with pytest.raises(ValueError, match="No trade IDs provided for deletion"):
            await store.trades.delete_many([])

    async def test_delete_many(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        _seed_trades(database)

        assert await store.trades.delete_many(["1", "3"]) is True

        assert [r["id"] for r in database.tables[Tables.TRADES]] == ["2"]
        (_, _, filters) = database.calls[-1]
        assert filters[0].op == c.Query.FilterOp.IN

    async def test_delete_many_failure_single_attempt(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.fail_next(_retryable())

        with pytest.raises(DatabaseError, match="Database error: 503"):
            await store.trades.delete_many(["1"])

        assert database.count("delete") == 1
        assert store.queue.pending_count == 0

    async def test_delete_all(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        _seed_trades(database)

        assert await store.trades.delete_all() is True
        assert database.tables[Tables.TRADES] == []

    async def test_add_returns_inserted_row(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        row = await store.trades.add(tc.Rows.TRADE)

        assert row["id"] == "42"
        assert "status" not in row
        assert database.count("insert", Tables.TRADES) == 1

    async def test_add_failure_not_retried(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.fail_next(_retryable())

        with pytest.raises(DatabaseError):
            await store.trades.add(tc.Rows.TRADE)

        assert database.count("insert") == 1

    async def test_calendar_range(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        _seed_trades(database)

        rows = await store.trades.list_for_calendar("2024-03-01", "2024-03-31")

        assert [r["id"] for r in rows] == ["1", "2"]

    async def test_calendar_fails_closed(
        self,
        store: JournalDataStore,
        database: FakeDatabase,
        owner: dict[str, str | None],
    ) -> None:
        owner["id"] = None

        assert await store.trades.list_for_calendar("2024-03-01", "2024-03-31") == []
        assert database.calls == []


# =============================================================================
# OWNER-SCOPED RESOURCES
# =============================================================================


class TestChallenges:
    async def test_list_scoped_to_owner_newest_first(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.tables[Tables.CHALLENGES] = [
            {"id": "a", "user_id": tc.Users.OWNER_ID, "createdAt": "2024-01-01"},
            {"id": "b", "user_id": tc.Users.OTHER_OWNER_ID, "createdAt": "2024-02-01"},
            {"id": "c", "user_id": tc.Users.OWNER_ID, "createdAt": "2024-03-01"},
        ]

        rows = await store.challenges.list()

        assert [r["id"] for r in rows] == ["c", "a"]

    async def test_list_fails_closed(
        self,
        store: JournalDataStore,
        database: FakeDatabase,
        owner: dict[str, str | None],
    ) -> None:
        owner["id"] = None

        assert await store.challenges.list() == []
        assert database.calls == []

    async def test_upsert_projects_and_injects_owner(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        await store.challenges.upsert(tc.Rows.CHALLENGE)

        (row,) = database.tables[Tables.CHALLENGES]
        assert row["user_id"] == tc.Users.OWNER_ID
        assert row["status"] == "completed"
        assert "notes" not in row
        assert "completed" not in row

    async def test_upsert_keeps_untyped_values(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        await store.challenges.upsert(
            {"id": "c1", "createdAt": 1700000000000, "success": "yes"}
        )

        (row,) = database.tables[Tables.CHALLENGES]
        assert row["createdAt"] == 1700000000000
        assert row["success"] == "yes"
        assert sink.toasts_of(Severity.ERROR) == []
        assert sink.statuses[-1][0] == ConnectionStatus.CONNECTED

    async def test_upsert_without_owner(
        self,
        store: JournalDataStore,
        database: FakeDatabase,
        owner: dict[str, str | None],
        sink: RecordingSink,
    ) -> None:
        owner["id"] = None

        with pytest.raises(AuthRequiredError):
            await store.challenges.upsert(tc.Rows.CHALLENGE)

        assert database.calls == []
        assert sink.toasts_of(Severity.ERROR) == [c.Messages.NOT_AUTHENTICATED]

    async def test_delete_scoped_to_owner(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.tables[Tables.CHALLENGES] = [
            {"id": "x", "user_id": tc.Users.OWNER_ID},
            {"id": "x", "user_id": tc.Users.OTHER_OWNER_ID},
        ]

        await store.challenges.delete("x")

        assert database.tables[Tables.CHALLENGES] == [
            {"id": "x", "user_id": tc.Users.OTHER_OWNER_ID}
        ]


class TestPartialExits:
    async def test_save_injects_owner(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        row = await store.partial_exits.save(tc.Rows.PARTIAL_EXIT)

        assert row["user_id"] == tc.Users.OWNER_ID
        assert database.count("insert", Tables.PARTIAL_EXITS) == 1

    async def test_list_by_trade(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.tables[Tables.PARTIAL_EXITS] = [
            {"id": "p2", "trade_id": "42", "user_id": tc.Users.OWNER_ID, "exit_date": "2024-03-03"},
            {"id": "p1", "trade_id": "42", "user_id": tc.Users.OWNER_ID, "exit_date": "2024-03-02"},
            {"id": "p3", "trade_id": "43", "user_id": tc.Users.OWNER_ID, "exit_date": "2024-03-01"},
        ]

        rows = await store.partial_exits.list("42")

        assert [r["id"] for r in rows] == ["p1", "p2"]

    async def test_list_fails_closed(
        self,
        store: JournalDataStore,
        database: FakeDatabase,
        owner: dict[str, str | None],
    ) -> None:
        owner["id"] = None

        assert await store.partial_exits.list("42") == []
        assert database.calls == []

    async def test_save_without_owner(
        self, store: JournalDataStore, owner: dict[str, str | None]
    ) -> None:
        owner["id"] = None

        with pytest.raises(AuthRequiredError):
            await store.partial_exits.save(tc.Rows.PARTIAL_EXIT)

    async def test_upsert_and_delete(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        await store.partial_exits.upsert(tc.Rows.PARTIAL_EXIT)
        assert database.tables[Tables.PARTIAL_EXITS][0]["user_id"] == tc.Users.OWNER_ID

        await store.partial_exits.delete("p1")
        assert database.tables[Tables.PARTIAL_EXITS] == []
        assert sink.toasts_of(Severity.SUCCESS) == [
            "Partial exit saved successfully",
            "Partial exit deleted successfully",
        ]


class TestAttachments:
    async def test_upload(
        self, store: JournalDataStore, blob_storage: FakeStorage
    ) -> None:
        attachment = await store.attachments.upload(tc.Users.OWNER_ID, "chart.png", b"png")

        owner_dir, name = attachment.path.split("/")
        stamp, filename = name.split("_", 1)
        assert owner_dir == tc.Users.OWNER_ID
        assert stamp.isdigit()
        assert filename == "chart.png"
        assert attachment.public_url.endswith(attachment.path)
        assert blob_storage.blobs[c.Tables.ATTACHMENTS_BUCKET, attachment.path] == b"png"

    async def test_upload_failure(
        self, store: JournalDataStore, blob_storage: FakeStorage
    ) -> None:
        blob_storage.failures.append(RemoteError("Payload too large", status=413))

        with pytest.raises(DatabaseError, match="Payload too large"):
            await store.attachments.upload(tc.Users.OWNER_ID, "big.png", b"x")


# =============================================================================
# BULK LOAD
# =============================================================================


class TestLoadAll:
    async def test_snapshot(
        self, store: JournalDataStore, database: FakeDatabase, sink: RecordingSink
    ) -> None:
        _seed_trades(database)
        database.tables[Tables.LEDGER] = [dict(tc.Rows.LEDGER_ENTRY)]

        snapshot = await store.load_all()

        assert len(snapshot.trades) == 3
        assert snapshot.ledger == [tc.Rows.LEDGER_ENTRY]
        assert snapshot.challenges == []
        assert sink.statuses[0][0] == ConnectionStatus.SYNCING
        assert store.status == ConnectionStatus.CONNECTED

    async def test_partial_failure_still_returns_snapshot(
        self, store: JournalDataStore, database: FakeDatabase
    ) -> None:
        database.fail_next(*[_retryable() for _ in range(10)])

        snapshot = await store.load_all()

        assert snapshot.trades == snapshot.ledger == snapshot.challenges == []
        assert store.status == ConnectionStatus.DISCONNECTED
