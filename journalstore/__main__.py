"""Entry point for journalstore.

Usage:
    # Show info (default)
    python -m journalstore

    # Verify the Supabase configuration with one trades fetch
    python -m journalstore --check

    # Purge cached journal data from the preference file
    python -m journalstore --clean-storage
"""

import asyncio
import sys

import structlog

from journalstore import __version__
from journalstore.constants import JournalConstants as c
from journalstore.datastore import JournalDataStore
from journalstore.exceptions import JournalError
from journalstore.settings import JournalSettings
from journalstore.storage import PreferenceStore
from journalstore.supabase_adapter import SupabaseBackend

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger("journalstore")


def _print_info(settings: JournalSettings) -> None:
    """Print package info and usage."""
    info = f"""\
journalstore v{__version__} - Trading journal data layer for Supabase

Usage:
    python -m journalstore                  # Show this info
    python -m journalstore --check          # Fetch trades once and report status
    python -m journalstore --clean-storage  # Purge cached data, keep UI prefs

Configuration:
    JOURNAL_SUPABASE_URL      - Project URL ({"set" if settings.supabase_url else "unset"})
    JOURNAL_SUPABASE_KEY      - Anon key ({"set" if settings.supabase_key else "unset"})
    JOURNAL_PREFERENCES_PATH  - Preference file (default: {c.Preferences.DEFAULT_PATH})
"""
    print(info)  # noqa: T201


async def _check(settings: JournalSettings) -> int:
    """Fetch trades once and report the resulting connection status."""
    try:
        backend = await SupabaseBackend.connect(settings)
    except JournalError as e:
        log.error("connect_failed", error=e.message)
        return 1
    async with JournalDataStore(backend.database, settings=settings) as store:
        trades = await store.trades.list()
        log.info("check_complete", status=str(store.status), trades=len(trades))
        return 0 if store.status == c.Status.ConnectionStatus.CONNECTED else 1


def main() -> int:
    """Entry point."""
    args = sys.argv[1:]
    settings = JournalSettings()

    if "--check" in args:
        return asyncio.run(_check(settings))

    if "--clean-storage" in args:
        prefs = PreferenceStore(settings.preferences_path)
        removed = prefs.clean()
        log.info("preferences_cleaned", path=str(prefs.path), removed=removed)
        return 0

    _print_info(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
