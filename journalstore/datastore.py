"""Journal data store and resource facades.

JournalDataStore is the single owned service object of the data layer. It
holds the connection status, the per-key operation queue and the remote
collaborators, and exposes one facade per resource:

    store.trades        TradesFacade
    store.ledger        LedgerFacade
    store.challenges    ChallengesFacade
    store.partial_exits PartialExitsFacade
    store.attachments   AttachmentsFacade

Composition rules (identical for every facade):
- list(): deadline + read retry policy; exhaustion -> DISCONNECTED, one
  error notification, empty list. Never raises.
- upsert()/delete(): queued by "<verb>-<resource>-<id>", deadline + write
  retry policy; success -> CONNECTED + success notification; exhaustion ->
  DISCONNECTED + error notification + DatabaseError.
- bulk deletes and inserts: single deadline-bounded attempt, not queued,
  not retried; errors wrapped in DatabaseError.
- owner-scoped reads fail closed (empty list, no remote call); owner-scoped
  writes raise AuthRequiredError.

Example:
    >>> async with JournalDataStore(backend.database, owner_provider=auth.owner_id) as store:
    ...     trades = await store.trades.list()
    ...     await store.trades.upsert({"id": "42", "asset": "ES", "pnl": 125.0})

"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from typing import TYPE_CHECKING, ClassVar, Self

from journalstore.constants import JournalConstants as c
from journalstore.exceptions import (
    AuthRequiredError,
    DatabaseError,
    NoConnectionError,
    RemoteError,
)
from journalstore.models import JournalModels
from journalstore.settings import JournalSettings
from journalstore.status import SyncStatusReporter
from journalstore.utilities import JournalUtilities as u

if TYPE_CHECKING:
    from collections.abc import Iterable

    from journalstore.protocols import BlobStorageProtocol, RemoteDatabaseProtocol
    from journalstore.types import JournalTypes as t
    from journalstore.types import T

log = logging.getLogger(__name__)

Severity = c.Status.Severity
Verb = c.Operation.Verb
Resource = c.Operation.Resource
FilterOp = c.Query.FilterOp


def operation_key(verb: Verb, resource: Resource, entity_id: object) -> str:
    """Build the OperationKey for a mutation target."""
    return c.Operation.KEY_TEMPLATE.format(verb=verb, resource=resource, id=entity_id)


def _entity_id(entity: t.Row) -> str | int:
    entity_id = entity.get(c.Tables.ID_FIELD)
    if entity_id is None or entity_id == "":
        msg = f"Entity has no '{c.Tables.ID_FIELD}' field"
        raise ValueError(msg)
    return entity_id  # type: ignore[return-value]


def _iso(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else value


class JournalDataStore:
    """Owned service object for the trading journal data layer.

    Thread Safety:
        Not thread-safe. All state (status, pending keys, waiters) is
        mutated on one event loop between suspension points.

    """

    def __init__(
        self,
        database: RemoteDatabaseProtocol | None = None,
        *,
        storage: BlobStorageProtocol | None = None,
        owner_provider: t.OwnerProvider | None = None,
        settings: JournalSettings | None = None,
        reporter: SyncStatusReporter | None = None,
    ) -> None:
        """Initialize the data store.

        Args:
            database: Remote table collaborator.
            storage: Blob collaborator for attachments.
            owner_provider: Returns the authenticated owner id.
            settings: Timeouts and retry configuration.
            reporter: Status reporter (one is created if omitted).

        """
        self._settings = settings or JournalSettings()
        self._database = database
        self._storage = storage
        self._owner_provider = owner_provider or (lambda: None)
        self._reporter = reporter or SyncStatusReporter()
        self._queue = u.OperationQueue()
        self._read_policy = u.RetryPolicy.for_reads(self._settings)
        self._write_policy = u.RetryPolicy.for_writes(self._settings)
        self._started = False

        self.trades = TradesFacade(self)
        self.ledger = LedgerFacade(self)
        self.challenges = ChallengesFacade(self)
        self.partial_exits = PartialExitsFacade(self)
        self.attachments = AttachmentsFacade(self)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Make the store ready for remote calls.

        Raises:
            NoConnectionError: If no database collaborator was provided.

        """
        if self._database is None:
            raise NoConnectionError
        self._started = True
        log.info("DataStore initialized successfully")

    async def close(self) -> None:
        """Stop accepting remote calls.

        In-flight operations are not cancelled; they finish on their own.
        """
        if self._queue.pending_count:
            log.warning(
                "DataStore closing with %d operations in flight: %s",
                self._queue.pending_count,
                sorted(self._queue.pending_keys),
            )
        self._started = False
        log.debug("DataStore closed")

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_started(self) -> bool:
        """Check if the store accepts remote calls."""
        return self._started

    @property
    def settings(self) -> JournalSettings:
        """Store configuration."""
        return self._settings

    @property
    def reporter(self) -> SyncStatusReporter:
        """Connection status and notification reporter."""
        return self._reporter

    @property
    def status(self) -> c.Status.ConnectionStatus:
        """Current connection status."""
        return self._reporter.status

    @property
    def queue(self) -> u.OperationQueue:
        """Per-key operation queue."""
        return self._queue

    @property
    def database(self) -> RemoteDatabaseProtocol:
        """Remote table collaborator.

        Raises:
            NoConnectionError: If the store is not started.

        """
        if not self._started or self._database is None:
            raise NoConnectionError
        return self._database

    @property
    def storage(self) -> BlobStorageProtocol:
        """Blob collaborator.

        Raises:
            NoConnectionError: If the store is not started or has no storage.

        """
        if not self._started or self._storage is None:
            raise NoConnectionError
        return self._storage

    @property
    def owner_id(self) -> str | None:
        """Authenticated owner id, or None when logged out."""
        return self._owner_provider()

    def require_owner(self) -> str:
        """Return the owner id or fail closed.

        Raises:
            AuthRequiredError: If no owner is authenticated.

        """
        owner = self._owner_provider()
        if not owner:
            self._reporter.notify(c.Messages.NOT_AUTHENTICATED, Severity.ERROR)
            raise AuthRequiredError
        return owner

    # =========================================================================
    # BULK LOAD
    # =========================================================================

    async def load_all(self) -> JournalModels.Snapshot:
        """Load trades, ledger and challenges concurrently.

        Returns:
            Snapshot of the three collections (empty where a fetch failed).

        """
        self._reporter.mark_syncing()
        trades, ledger, challenges = await asyncio.gather(
            self.trades.list(),
            self.ledger.list(),
            self.challenges.list(),
        )
        log.info(
            "Loaded %d trades, %d ledger entries, %d challenges",
            len(trades),
            len(ledger),
            len(challenges),
        )
        return JournalModels.Snapshot(
            trades=trades, ledger=ledger, challenges=challenges
        )

    # =========================================================================
    # COMPOSITION HELPERS
    # =========================================================================

    @staticmethod
    def _failure_message(error: BaseException, rejected: str) -> str:
        if u.ErrorClassifier.is_timeout(error):
            return c.Messages.TIMEOUT
        if isinstance(error, RemoteError):
            return rejected
        return c.Messages.CONNECTION_ISSUE

    async def fetch(
        self,
        operation: str,
        plural: str,
        call: t.CoroFactory[t.Rows],
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> t.Rows:
        """Deadline-bounded, retried read that never raises.

        Args:
            operation: Human-readable operation name ("Fetch trades").
            plural: Resource name used in the failure notification.
            call: Callable that returns the remote select awaitable.
            timeout: Deadline per attempt (defaults to timeout_fetch).

        Returns:
            Remote rows, or an empty list once retries are exhausted.

        """
        deadline = timeout or self._settings.timeout_fetch
        try:
            rows = await u.RetryStrategy.async_retry_with_backoff(
                lambda: u.RetryStrategy.call_with_timeout(call, deadline, operation),
                self._read_policy,
                operation,
            )
        except Exception as e:  # noqa: BLE001
            log.warning("%s failed after all retries: %s", operation, e)
            self._reporter.notify(
                self._failure_message(e, c.Messages.LOAD_FAILED.format(plural=plural)),
                Severity.ERROR,
            )
            self._reporter.mark_disconnected()
            return []

        self._reporter.mark_connected()
        return list(rows or [])

    async def mutate(
        self,
        key: str,
        operation: str,
        call: t.CoroFactory[object],
        *,
        success: str,
        failure: str,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> bool:
        """Queued, deadline-bounded, retried write.

        Args:
            key: OperationKey serializing writes to the same target.
            operation: Human-readable operation name ("Save trade").
            call: Callable that returns the remote write awaitable.
            success: Notification on success.
            failure: Notification when the service rejected the write.
            timeout: Deadline per attempt (defaults to timeout_write).

        Returns:
            True once the write is applied.

        Raises:
            DatabaseError: After retries are exhausted or on a
                non-retryable error.

        """
        deadline = timeout or self._settings.timeout_write

        async def _execute() -> bool:
            try:
                await u.RetryStrategy.async_retry_with_backoff(
                    lambda: u.RetryStrategy.call_with_timeout(call, deadline, operation),
                    self._write_policy,
                    operation,
                )
            except Exception as e:
                log.warning("%s failed after all retries: %s", operation, e)
                self._reporter.notify(
                    self._failure_message(e, failure), Severity.ERROR
                )
                self._reporter.mark_disconnected()
                raise DatabaseError(operation, e) from e

            self._reporter.mark_connected()
            self._reporter.notify(success, Severity.SUCCESS)
            return True

        return await self._queue.run(key, _execute)

    async def single(
        self,
        operation: str,
        call: t.CoroFactory[T],
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> T:
        """Single deadline-bounded attempt: not queued, not retried.

        Args:
            operation: Human-readable operation name.
            call: Callable that returns the remote awaitable.
            timeout: Deadline (defaults to timeout_bulk).

        Returns:
            Result of the call.

        Raises:
            DatabaseError: Wrapping any failure.

        """
        deadline = timeout or self._settings.timeout_bulk
        try:
            return await u.RetryStrategy.call_with_timeout(call, deadline, operation)
        except Exception as e:
            log.error("%s failed: %s", operation, e)  # noqa: TRY400
            error = DatabaseError(operation, e)
            self._reporter.notify(error.message, Severity.ERROR)
            raise error from e


# =============================================================================
# RESOURCE FACADES
# =============================================================================


class _ResourceFacade:
    """Shared list/upsert/delete surface over one remote table."""

    table: ClassVar[str]
    resource: ClassVar[Resource]
    label: ClassVar[str]
    plural: ClassVar[str]
    order: ClassVar[JournalModels.Order | None] = None

    def __init__(self, store: JournalDataStore) -> None:
        self._store = store

    def _key(self, verb: Verb, entity_id: object) -> str:
        return operation_key(verb, self.resource, entity_id)

    def _prepare(self, entity: t.Row) -> t.Row:
        """Shape ``entity`` for transmission."""
        return dict(entity)

    async def list(self) -> t.Rows:
        """Fetch every row of the table."""
        return await self._store.fetch(
            f"Fetch {self.plural}",
            self.plural,
            lambda: self._store.database.select(self.table, (), self.order),
        )

    async def upsert(self, entity: t.Row) -> bool:
        """Insert or update ``entity`` by id.

        Raises:
            ValueError: If ``entity`` has no id.
            DatabaseError: After retries are exhausted.

        """
        entity_id = _entity_id(entity)
        row = self._prepare(entity)
        return await self._store.mutate(
            self._key(Verb.UPSERT, entity_id),
            f"Save {self.label.lower()}",
            lambda: self._store.database.upsert(self.table, row),
            success=c.Messages.SAVED.format(label=self.label),
            failure=c.Messages.SAVE_FAILED.format(label=self.label.lower()),
        )

    async def delete(self, entity_id: str | int) -> bool:
        """Delete the row with ``entity_id``.

        Raises:
            DatabaseError: After retries are exhausted.

        """
        filters = [JournalModels.Filter(column=c.Tables.ID_FIELD, value=entity_id)]
        return await self._store.mutate(
            self._key(Verb.DELETE, entity_id),
            f"Delete {self.label.lower()}",
            lambda: self._store.database.delete(self.table, filters),
            success=c.Messages.DELETED.format(label=self.label),
            failure=c.Messages.DELETE_FAILED.format(label=self.label.lower()),
        )


class TradesFacade(_ResourceFacade):
    """Trades: list, upsert, delete, bulk deletes, insert, calendar range."""

    table = c.Tables.TRADES
    resource = Resource.TRADE
    label = "Trade"
    plural = "trades"
    order = JournalModels.Order(column=c.Entities.TRADES_ORDER)

    def _prepare(self, entity: t.Row) -> t.Row:
        return {
            k: v
            for k, v in entity.items()
            if k not in c.Entities.TRADE_UI_ONLY_FIELDS
        }

    async def delete_many(self, ids: Iterable[str | int]) -> bool:
        """Delete all trades in ``ids`` in one call.

        Raises:
            ValueError: If ``ids`` is empty.
            DatabaseError: On any remote failure (no retry).

        """
        id_list = list(ids)
        if not id_list:
            raise ValueError(c.Messages.NO_IDS.format(resource="trade"))
        filters = [
            JournalModels.Filter(
                column=c.Tables.ID_FIELD, value=id_list, op=FilterOp.IN
            )
        ]
        await self._store.single(
            "Delete trades",
            lambda: self._store.database.delete(self.table, filters),
        )
        log.info("Deleted %d trades", len(id_list))
        return True

    async def delete_all(self) -> bool:
        """Delete every trade visible to the session.

        Raises:
            DatabaseError: On any remote failure (no retry).

        """
        filters = [
            JournalModels.Filter(column=c.Tables.ID_FIELD, value="", op=FilterOp.NEQ)
        ]
        await self._store.single(
            "Delete all trades",
            lambda: self._store.database.delete(self.table, filters),
        )
        return True

    async def add(self, trade: t.Row) -> t.Row:
        """Insert ``trade`` and return the stored row.

        Raises:
            DatabaseError: On any remote failure (no retry).

        """
        row = self._prepare(trade)
        inserted = await self._store.single(
            "Add trade",
            lambda: self._store.database.insert(self.table, [row]),
            timeout=self._store.settings.timeout_write,
        )
        return inserted[0]

    async def list_for_calendar(self, start: date | str, end: date | str) -> t.Rows:
        """Fetch the owner's trades closed within ``[start, end]``."""
        owner = self._store.owner_id
        if not owner:
            return []
        field = c.Entities.CALENDAR_DATE_FIELD
        filters = [
            JournalModels.Filter(column=c.Tables.OWNER_FIELD, value=owner),
            JournalModels.Filter(column=field, value=_iso(start), op=FilterOp.GTE),
            JournalModels.Filter(column=field, value=_iso(end), op=FilterOp.LTE),
        ]
        return await self._store.fetch(
            "Fetch calendar trades",
            self.plural,
            lambda: self._store.database.select(
                self.table, filters, JournalModels.Order(column=field)
            ),
        )


class LedgerFacade(_ResourceFacade):
    """Ledger entries: list, upsert, delete."""

    table = c.Tables.LEDGER
    resource = Resource.LEDGER
    label = "Ledger entry"
    plural = "ledger"
    order = JournalModels.Order(column=c.Entities.LEDGER_ORDER)


class ChallengesFacade(_ResourceFacade):
    """Challenges: owner-scoped list, projected upsert, owner-scoped delete."""

    table = c.Tables.CHALLENGES
    resource = Resource.CHALLENGE
    label = "Challenge"
    plural = "challenges"
    order = JournalModels.Order(column=c.Entities.CHALLENGES_ORDER, ascending=False)

    async def list(self) -> t.Rows:
        """Fetch the owner's challenges, newest first. Fails closed."""
        owner = self._store.owner_id
        if not owner:
            return []
        filters = [JournalModels.Filter(column=c.Tables.OWNER_FIELD, value=owner)]
        return await self._store.fetch(
            f"Fetch {self.plural}",
            self.plural,
            lambda: self._store.database.select(self.table, filters, self.order),
        )

    async def upsert(self, entity: t.Row) -> bool:
        """Project ``entity`` to the remote schema and upsert it.

        Raises:
            AuthRequiredError: If no owner is authenticated.
            DatabaseError: After retries are exhausted.

        """
        owner = self._store.require_owner()
        entity_id = _entity_id(entity)
        row = JournalModels.ChallengeRecord.from_challenge(entity, owner)
        return await self._store.mutate(
            self._key(Verb.UPSERT, entity_id),
            "Save challenge",
            lambda: self._store.database.upsert(self.table, row),
            success=c.Messages.SAVED.format(label=self.label),
            failure=c.Messages.SAVE_FAILED.format(label="challenge"),
        )

    async def delete(self, entity_id: str | int) -> bool:
        """Delete one of the owner's challenges.

        Raises:
            AuthRequiredError: If no owner is authenticated.
            DatabaseError: After retries are exhausted.

        """
        owner = self._store.require_owner()
        filters = [
            JournalModels.Filter(column=c.Tables.ID_FIELD, value=entity_id),
            JournalModels.Filter(column=c.Tables.OWNER_FIELD, value=owner),
        ]
        return await self._store.mutate(
            self._key(Verb.DELETE, entity_id),
            "Delete challenge",
            lambda: self._store.database.delete(self.table, filters),
            success=c.Messages.DELETED.format(label=self.label),
            failure=c.Messages.DELETE_FAILED.format(label="challenge"),
        )


class PartialExitsFacade(_ResourceFacade):
    """Partial exits of a trade, always scoped to the owner."""

    table = c.Tables.PARTIAL_EXITS
    resource = Resource.PARTIAL_EXIT
    label = "Partial exit"
    plural = "partial exits"
    order = JournalModels.Order(column=c.Entities.PARTIAL_EXITS_ORDER)

    def _owned(self, entity: t.Row) -> t.Row:
        return {**entity, c.Tables.OWNER_FIELD: self._store.require_owner()}

    async def list(self, trade_id: str | int) -> t.Rows:  # type: ignore[override]
        """Fetch the owner's partial exits of ``trade_id``. Fails closed."""
        owner = self._store.owner_id
        if not owner:
            return []
        filters = [
            JournalModels.Filter(
                column=c.Entities.PARTIAL_EXIT_TRADE_FIELD, value=trade_id
            ),
            JournalModels.Filter(column=c.Tables.OWNER_FIELD, value=owner),
        ]
        return await self._store.fetch(
            "Fetch partial exits",
            self.plural,
            lambda: self._store.database.select(self.table, filters, self.order),
            timeout=self._store.settings.timeout_partial_exit,
        )

    async def save(self, partial_exit: t.Row) -> t.Row:
        """Insert ``partial_exit`` for the owner and return the stored row.

        Raises:
            AuthRequiredError: If no owner is authenticated.
            DatabaseError: On any remote failure (inserts are not retried).

        """
        row = self._owned(partial_exit)
        inserted = await self._store.single(
            "Save partial exit",
            lambda: self._store.database.insert(self.table, [row]),
            timeout=self._store.settings.timeout_partial_exit,
        )
        return inserted[0]

    async def upsert(self, entity: t.Row) -> bool:
        """Insert or update an owned partial exit by id.

        Raises:
            AuthRequiredError: If no owner is authenticated.
            DatabaseError: After retries are exhausted.

        """
        row = self._owned(entity)
        entity_id = _entity_id(entity)
        return await self._store.mutate(
            self._key(Verb.UPSERT, entity_id),
            "Save partial exit",
            lambda: self._store.database.upsert(self.table, row),
            success=c.Messages.SAVED.format(label=self.label),
            failure=c.Messages.SAVE_FAILED.format(label="partial exit"),
            timeout=self._store.settings.timeout_partial_exit,
        )

    async def delete(self, entity_id: str | int) -> bool:
        """Delete one of the owner's partial exits.

        Raises:
            AuthRequiredError: If no owner is authenticated.
            DatabaseError: After retries are exhausted.

        """
        owner = self._store.require_owner()
        filters = [
            JournalModels.Filter(column=c.Tables.ID_FIELD, value=entity_id),
            JournalModels.Filter(column=c.Tables.OWNER_FIELD, value=owner),
        ]
        return await self._store.mutate(
            self._key(Verb.DELETE, entity_id),
            "Delete partial exit",
            lambda: self._store.database.delete(self.table, filters),
            success=c.Messages.DELETED.format(label=self.label),
            failure=c.Messages.DELETE_FAILED.format(label="partial exit"),
            timeout=self._store.settings.timeout_partial_exit,
        )


class AttachmentsFacade:
    """Trade attachments stored in the blob bucket."""

    def __init__(self, store: JournalDataStore) -> None:
        self._store = store

    async def upload(
        self, owner_id: str, filename: str, data: bytes
    ) -> JournalModels.Attachment:
        """Upload ``data`` under ``<owner>/<epoch_ms>_<filename>``.

        Raises:
            DatabaseError: On any upload failure (no retry).

        """
        bucket = self._store.settings.attachments_bucket
        path = f"{owner_id}/{time.time_ns() // 1_000_000}_{filename}"

        async def _upload() -> str:
            storage = self._store.storage
            await storage.upload(bucket, path, data)
            return await storage.public_url(bucket, path)

        public_url = await self._store.single("Upload attachment", _upload)
        log.debug("Uploaded attachment %s", path)
        return JournalModels.Attachment(public_url=public_url, path=path)
