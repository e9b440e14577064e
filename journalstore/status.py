"""Sync status reporting for journalstore.

Holds the process-wide ConnectionStatus as instance state of the data store
and fans status changes and notifications out to registered sinks.

Hierarchy Level: 2
- Imports: JournalConstants (Level 0)
- Used by: datastore.py, session.py

Usage:
    >>> reporter = SyncStatusReporter()
    >>> reporter.add_sink(indicator)
    >>> reporter.mark_connected()
    >>> reporter.notify("Trade saved successfully", c.Status.Severity.SUCCESS)

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from journalstore.constants import JournalConstants as c

if TYPE_CHECKING:
    from journalstore.protocols import StatusSinkProtocol
    from journalstore.types import JournalTypes as t

log = logging.getLogger(__name__)

ConnectionStatus = c.Status.ConnectionStatus
Severity = c.Status.Severity


@dataclass(frozen=True)
class StatusSnapshot:
    """Status snapshot.

    Attributes:
        status: Current connection status.
        last_sync_time: Time of the last successful remote call.

    """

    status: ConnectionStatus
    last_sync_time: datetime | None = None

    @property
    def is_healthy(self) -> bool:
        """Check if the last completed operation reached the service."""
        return self.status == ConnectionStatus.CONNECTED


def status_text(status: ConnectionStatus) -> str:
    """Default indicator text for ``status``."""
    if status == ConnectionStatus.CONNECTED:
        return c.Status.TEXT_CONNECTED
    if status == ConnectionStatus.DISCONNECTED:
        return c.Status.TEXT_DISCONNECTED
    return c.Status.TEXT_OTHER


class SyncStatusReporter:
    """Connection status and notification fan-out.

    Status transitions are driven by the data store after an operation
    completes (never per retry attempt). Sinks that raise are logged and
    skipped so a broken widget cannot fail a remote operation.
    """

    def __init__(self) -> None:
        """Initialize with UNKNOWN status and no sinks."""
        self._status = ConnectionStatus.UNKNOWN
        self._last_sync_time: datetime | None = None
        self._sinks: list[StatusSinkProtocol] = []

    @property
    def status(self) -> ConnectionStatus:
        """Current connection status."""
        return self._status

    @property
    def last_sync_time(self) -> datetime | None:
        """Time of the last successful remote call."""
        return self._last_sync_time

    def snapshot(self) -> StatusSnapshot:
        """Return an immutable view of the current status."""
        return StatusSnapshot(self._status, self._last_sync_time)

    def add_sink(self, sink: StatusSinkProtocol) -> t.Unsubscribe:
        """Register ``sink`` and return a callable that removes it."""
        self._sinks.append(sink)

        def _remove() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return _remove

    def set_status(self, status: ConnectionStatus, message: str = "") -> None:
        """Update the status and every sink's indicator.

        Args:
            status: New connection status.
            message: Indicator text (defaults to the status text).

        """
        if status != self._status:
            log.info("Connection status %s -> %s", self._status, status)
        self._status = status
        text = message or status_text(status)
        for sink in list(self._sinks):
            try:
                sink.connection_status_changed(status, text)
            except Exception:
                log.exception("Status sink failed for %s", status)

    def mark_connected(self) -> None:
        """Record a successful remote call."""
        self._last_sync_time = datetime.now(UTC)
        self.set_status(ConnectionStatus.CONNECTED)

    def mark_disconnected(self) -> None:
        """Record an exhausted remote call."""
        self.set_status(ConnectionStatus.DISCONNECTED)

    def mark_syncing(self) -> None:
        """Record the start of a bulk load."""
        self.set_status(ConnectionStatus.SYNCING)

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        """Log a sync notification and forward it to every sink."""
        log.info("[SYNC] %s", message)
        for sink in list(self._sinks):
            try:
                sink.show_toast(message, severity)
            except Exception:
                log.exception("Notification sink failed: %s", message)
