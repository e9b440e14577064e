"""Pydantic 2 models for journalstore.

Type-safe models for auth results, query contracts and row projections.

Hierarchy Level: 2
- Imports: JournalConstants (Level 0)
- Used by: auth.py, datastore.py, supabase_adapter.py, session.py

Usage:

    # Describe a query
    flt = JournalModels.Filter(column="user_id", value=owner_id)

    # Project a challenge for the remote schema
    row = JournalModels.ChallengeRecord.from_challenge(challenge, owner_id)
"""

from __future__ import annotations

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field

from journalstore.constants import JournalConstants as c
from journalstore.types import JournalTypes as t


class JournalModels:
    """Container for all journalstore Pydantic models.

    All models are nested for clean namespace:
    - Base: Base class for frozen models
    - AuthUser / AuthSession / AuthResult: authentication results
    - Filter / Order: remote query contract
    - ChallengeRecord: challenge projection for the remote schema
    - Attachment: uploaded blob reference
    - Snapshot: bulk-loaded journal collections
    """

    class Base(BaseModel):
        """Base class for journalstore data models."""

        model_config = ConfigDict(frozen=True, from_attributes=True)

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    class AuthUser(Base):
        """Authenticated user.

        ``display_name`` falls back to the email when the provider has no
        ``name`` in the user metadata.
        """

        id: str
        email: str | None = None
        display_name: str | None = None

        @classmethod
        def from_provider(cls, user: object) -> Self | None:
            """Create model from a provider user object or dict.

            Args:
                user: Provider user (attribute access or mapping).

            Returns:
                Model instance or None if user is None.

            """
            if user is None:
                return None
            if isinstance(user, dict):
                data = user
            else:
                data = {
                    "id": getattr(user, "id", None),
                    "email": getattr(user, "email", None),
                    "user_metadata": getattr(user, "user_metadata", None),
                }
            metadata = data.get("user_metadata") or {}
            email = data.get("email")
            return cls(
                id=str(data["id"]),
                email=email,
                display_name=(
                    data.get("display_name") or metadata.get("name") or email
                ),
            )

    class AuthSession(Base):
        """Provider session tokens."""

        access_token: str | None = None
        refresh_token: str | None = None
        expires_at: int | None = None

    class AuthResult(Base):
        """Result of sign-in or sign-up.

        ``session`` is None when the provider requires email confirmation.
        """

        user: AuthUser | None = None
        session: AuthSession | None = None

    # =========================================================================
    # QUERY CONTRACT
    # =========================================================================

    class Filter(Base):
        """Single column filter for select/delete."""

        column: str
        value: str | int | float | bool | list[str | int | float] | None
        op: c.Query.FilterOp = c.Query.FilterOp.EQ

    class Order(Base):
        """Result ordering for select."""

        column: str
        ascending: bool = True

    # =========================================================================
    # ROW PROJECTIONS
    # =========================================================================

    class ChallengeRecord(BaseModel):
        """Challenge projected onto the remote ``challenges`` schema.

        Only the allow-listed fields are transmitted; ``completed`` is not a
        column and becomes the derived ``status``. Values are carried through
        unchanged; the remote schema owns their types.

        Example:
            >>> row = JournalModels.ChallengeRecord.from_challenge(
            ...     {"id": "c1", "title": "30 days", "completed": True},
            ...     owner_id="u1",
            ... )
            >>> row["status"]
            'completed'

        """

        model_config = ConfigDict(frozen=True, populate_by_name=True)

        id: Any = None
        title: Any = None
        description: Any = None
        timeframe: Any = None
        max_risk: Any = Field(default=None, alias="maxRisk")
        start_date: Any = Field(default=None, alias="startDate")
        end_date: Any = Field(default=None, alias="endDate")
        created_at: Any = Field(default=None, alias="createdAt")
        success: Any = None
        starting_capital: Any = Field(default=None, alias="startingCapital")
        target_capital: Any = Field(default=None, alias="targetCapital")
        user_id: str
        completed: bool = Field(default=False, exclude=True)

        @computed_field  # type: ignore[prop-decorator]
        @property
        def status(self) -> str:
            """Derived status column."""
            if self.completed:
                return c.Entities.CHALLENGE_COMPLETED
            return c.Entities.CHALLENGE_ACTIVE

        @classmethod
        def from_challenge(
            cls, challenge: t.Row, owner_id: str
        ) -> dict[str, t.JSONValue]:
            """Project a UI challenge into a remote row.

            Args:
                challenge: Challenge as produced by the UI.
                owner_id: Authenticated owner id injected as ``user_id``.

            Returns:
                Row dict with camelCase column names.

            """
            fields = {
                name: challenge[name]
                for name in c.Entities.CHALLENGE_FIELDS
                if name in challenge
            }
            record = cls.model_validate({
                **fields,
                "user_id": owner_id,
                "completed": bool(challenge.get("completed")),
            })
            row = record.model_dump(by_alias=True, exclude_unset=True)
            row["status"] = record.status
            return row

    # =========================================================================
    # STORAGE AND SNAPSHOTS
    # =========================================================================

    class Attachment(Base):
        """Uploaded blob reference."""

        public_url: str
        path: str

    class Snapshot(Base):
        """All journal collections loaded after a real login."""

        trades: list[dict[str, Any]] = Field(default_factory=list)
        ledger: list[dict[str, Any]] = Field(default_factory=list)
        challenges: list[dict[str, Any]] = Field(default_factory=list)
