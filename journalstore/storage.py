"""Local preference store.

File-backed key/value state (JSON via orjson). Holds UI preferences such as
the theme and the last active page; stale cached journal data is purged by
``clean()`` so the remote service stays the only source of truth.
"""

from __future__ import annotations

import logging
from pathlib import Path

import orjson

from journalstore.constants import JournalConstants as c
from journalstore.types import JournalTypes as t

log = logging.getLogger(__name__)


class PreferenceStore:
    """Persistent key/value preferences.

    Every mutation is written through to ``path`` immediately.

    Usage:
        prefs = PreferenceStore("~/.journalstore/preferences.json")
        page = prefs.get("currentPage", "dashboard")
        prefs.clean()
    """

    def __init__(self, path: str | Path = c.Preferences.DEFAULT_PATH) -> None:
        self._path = Path(path).expanduser()
        self._data: dict[str, t.JSONValue] = self._load()

    @property
    def path(self) -> Path:
        """Backing file."""
        return self._path

    def _load(self) -> dict[str, t.JSONValue]:
        if not self._path.exists():
            return {}
        try:
            data = orjson.loads(self._path.read_bytes())
        except orjson.JSONDecodeError:
            log.warning("Ignoring corrupt preference file %s", self._path)
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring non-object preference file %s", self._path)
            return {}
        return data

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(orjson.dumps(self._data, option=orjson.OPT_INDENT_2))

    def get(self, key: str, default: t.JSONValue = None) -> t.JSONValue:
        """Return the value stored under ``key``."""
        return self._data.get(key, default)

    def set(self, key: str, value: t.JSONValue) -> None:
        """Store ``value`` under ``key``."""
        self._data[key] = value
        self._save()

    def remove(self, key: str) -> None:
        """Remove ``key`` if present."""
        if key in self._data:
            del self._data[key]
            self._save()

    def keys(self) -> list[str]:
        """All stored keys."""
        return list(self._data)

    def clean(self) -> list[str]:
        """Purge cached journal data, keeping UI preferences.

        Removes ``trades``, ``ledger`` and every ``partial_exits_*`` key.
        ``theme`` and ``currentPage`` are preserved.

        Returns:
            The removed keys.

        """
        removed = [
            key
            for key in self._data
            if key not in c.Preferences.PRESERVED_KEYS
            and (
                key in c.Preferences.DATA_KEYS
                or key.startswith(c.Preferences.PARTIAL_EXITS_PREFIX)
            )
        ]
        for key in removed:
            del self._data[key]
        self._save()
        log.info("Preferences cleaned - removed %d keys, kept UI preferences", len(removed))
        return removed
