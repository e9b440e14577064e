"""Type definitions for journalstore.

All type definitions organized in a single container class for:
- Clean namespace (no loose code)
- Single import: `from journalstore.types import JournalTypes`

Hierarchy Level: 1
- Used by: JournalUtilities, protocols.py, datastore.py

Usage:
    >>> from journalstore.types import JournalTypes
    >>> def save(row: JournalTypes.Row) -> None: ...

"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class JournalTypes:
    """Trading journal type definitions container.

    Categories:
    - JSON types: JSONPrimitive, JSONValue
    - Row types: Row, Rows
    - Callable types: CoroFactory, OwnerProvider, Unsubscribe

    """

    # =========================================================================
    # JSON TYPE ALIASES
    # =========================================================================

    type JSONPrimitive = str | int | float | bool | None
    """Primitive JSON-compatible values."""

    type JSONValue = JSONPrimitive | list[JSONValue] | dict[str, JSONValue]
    """Recursive JSON-compatible value type."""

    # =========================================================================
    # ROW TYPE ALIASES
    # =========================================================================

    type Row = dict[str, JSONValue]
    """A single remote table row."""

    type Rows = list[dict[str, JSONValue]]
    """Rows returned by a select or insert."""

    # =========================================================================
    # CALLABLE TYPE ALIASES
    # =========================================================================

    type CoroFactory[R] = Callable[[], Awaitable[R]]
    """Zero-argument callable producing a fresh awaitable per attempt."""

    type OwnerProvider = Callable[[], str | None]
    """Returns the authenticated owner id, or None when logged out."""

    type Unsubscribe = Callable[[], None]
    """Detaches a previously registered listener."""
