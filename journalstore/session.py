"""Session/UI bridge.

Reacts to authentication transitions and drives the SessionUIProtocol:
container visibility, the live clock, page and theme restore and the bulk
data load after a real login.

Transitions (see ``SessionBridge.classify``):
    user set, no previous user or first event  -> REAL_LOGIN
    user set otherwise                         -> CREDENTIAL_REFRESH
    user None                                  -> LOGOUT
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from journalstore.constants import JournalConstants as c
from journalstore.exceptions import JournalError
from journalstore.settings import JournalSettings

if TYPE_CHECKING:
    from journalstore.auth import AuthEventStream, AuthService
    from journalstore.datastore import JournalDataStore
    from journalstore.models import JournalModels
    from journalstore.protocols import SessionUIProtocol
    from journalstore.storage import PreferenceStore

log = structlog.get_logger(__name__)

State = c.Session.State
Transition = c.Session.Transition
AuthMode = c.Session.AuthMode
Severity = c.Status.Severity


@dataclass
class AppState:
    """In-memory collections of the signed-in user."""

    user: JournalModels.AuthUser | None = None
    trades: list[dict[str, Any]] = field(default_factory=list)
    ledger: list[dict[str, Any]] = field(default_factory=list)
    challenges: list[dict[str, Any]] = field(default_factory=list)
    challenge_history: list[dict[str, Any]] = field(default_factory=list)

    def clear(self) -> None:
        """Drop the user and every collection."""
        self.user = None
        self.trades = []
        self.ledger = []
        self.challenges = []
        self.challenge_history = []


class SessionBridge:
    """Drives the UI from auth state changes."""

    def __init__(
        self,
        auth: AuthService,
        store: JournalDataStore,
        ui: SessionUIProtocol,
        *,
        preferences: PreferenceStore | None = None,
        settings: JournalSettings | None = None,
    ) -> None:
        self._auth = auth
        self._store = store
        self._ui = ui
        self._preferences = preferences
        self._settings = settings or JournalSettings()

        self.app = AppState()
        self._state = State.LOGGED_OUT
        self._previous_user: JournalModels.AuthUser | None = None
        self._is_initial_load = True
        self._login_generation = 0
        self._mode = AuthMode.SIGN_IN

        self._clock_task: asyncio.Task[None] | None = None
        self._events: AuthEventStream | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._log = log.bind(component="session")

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> State:
        """Current session state."""
        return self._state

    @property
    def mode(self) -> AuthMode:
        """Current auth form mode."""
        return self._mode

    @property
    def clock_running(self) -> bool:
        """Check if the live clock task is active."""
        return self._clock_task is not None and not self._clock_task.done()

    @staticmethod
    def classify(
        user: JournalModels.AuthUser | None,
        previous_user: JournalModels.AuthUser | None,
        *,
        is_initial_load: bool,
    ) -> Transition:
        """Classify an auth change event."""
        if user is None:
            return Transition.LOGOUT
        if previous_user is None or is_initial_load:
            return Transition.REAL_LOGIN
        return Transition.CREDENTIAL_REFRESH

    # =========================================================================
    # AUTH TRANSITIONS
    # =========================================================================

    async def handle_auth_change(self, user: JournalModels.AuthUser | None) -> Transition:
        """Apply one auth change event to the UI and app state."""
        transition = self.classify(
            user, self._previous_user, is_initial_load=self._is_initial_load
        )
        if user is None:
            self._logged_out()
        elif transition == Transition.REAL_LOGIN:
            await self._real_login(user)
        else:
            self.app.user = user
            self._previous_user = user
            self._log.debug("credential_refresh", user_id=user.id)
        return transition

    async def _real_login(self, user: JournalModels.AuthUser) -> None:
        self._log.info("real_login", user_id=user.id)
        self._login_generation += 1
        generation = self._login_generation
        self.app.user = user
        self._previous_user = user
        self._is_initial_load = False
        self._state = State.LOGGED_IN

        self._ui.set_user_display_name(c.Messages.LOADING)
        self._ui.show_app()
        self._restart_clock()

        page = self._preference(c.Preferences.CURRENT_PAGE_KEY) or self._settings.default_page
        snapshot = await self._store.load_all()
        if generation != self._login_generation:
            # Logged out or logged in again while loading
            self._log.info("stale_snapshot_dropped", user_id=user.id)
            return
        self.app.trades = list(snapshot.trades)
        self.app.ledger = list(snapshot.ledger)
        self.app.challenges = list(snapshot.challenges)
        self.app.challenge_history = [
            row
            for row in snapshot.challenges
            if row.get("status") == c.Entities.CHALLENGE_COMPLETED
        ]
        self._ui.render_snapshot(snapshot)

        self._ui.activate_page(str(page))
        theme = self._preference(c.Preferences.THEME_KEY)
        self._ui.apply_theme(str(theme) if theme else None)
        self._ui.set_user_display_name(user.display_name or user.email or "")
        self._log.info(
            "session_ready",
            page=page,
            trades=len(self.app.trades),
            ledger=len(self.app.ledger),
            challenges=len(self.app.challenges),
        )

    def _logged_out(self) -> None:
        self._log.info("logged_out")
        self._login_generation += 1
        self.app.clear()
        self._stop_clock()
        self._ui.show_auth()
        self._state = State.LOGGED_OUT
        self._previous_user = None
        self._is_initial_load = True

    def _preference(self, key: str) -> object:
        if self._preferences is None:
            return None
        return self._preferences.get(key)

    # =========================================================================
    # CLOCK
    # =========================================================================

    async def _tick(self) -> None:
        while True:
            self._ui.update_clock(datetime.now())
            await asyncio.sleep(self._settings.clock_interval)

    def _restart_clock(self) -> None:
        self._stop_clock()
        self._clock_task = asyncio.create_task(self._tick())

    def _stop_clock(self) -> None:
        if self._clock_task is not None:
            self._clock_task.cancel()
            self._clock_task = None

    # =========================================================================
    # USER ACTIONS
    # =========================================================================

    async def logout(self) -> None:
        """Sign out and force the logged-out UI. Never raises."""
        await self._auth.sign_out()
        self._logged_out()
        self._ui.show_toast(c.Messages.SIGNED_OUT, Severity.INFO)

    def toggle_mode(self) -> AuthMode:
        """Flip the auth form between sign-in and sign-up."""
        self._mode = AuthMode.SIGN_UP if self._mode == AuthMode.SIGN_IN else AuthMode.SIGN_IN
        self._ui.set_auth_message("")
        self._apply_labels()
        return self._mode

    def _apply_labels(self) -> None:
        if self._mode == AuthMode.SIGN_UP:
            self._ui.set_auth_labels(
                c.Session.SIGN_UP_TITLE, c.Session.SIGN_UP_BUTTON, c.Session.SIGN_UP_TOGGLE
            )
        else:
            self._ui.set_auth_labels(
                c.Session.SIGN_IN_TITLE, c.Session.SIGN_IN_BUTTON, c.Session.SIGN_IN_TOGGLE
            )

    async def submit_credentials(self, email: str, password: str) -> bool:
        """Submit the auth form in the current mode.

        Returns:
            True on success; False after showing the error on the form.

        """
        self._ui.toggle_spinner(active=True)
        self._ui.set_auth_message("")
        try:
            if self._mode == AuthMode.SIGN_IN:
                await self._auth.sign_in(email, password)
            else:
                await self._auth.sign_up(email, password)
                self._ui.show_toast(c.Messages.SIGNUP_WELCOME, Severity.SUCCESS)
        except JournalError as e:
            self._log.warning("auth_failed", mode=str(self._mode), error=e.message)
            self._ui.set_auth_message(e.message or c.Messages.AUTH_FAILED)
            return False
        finally:
            self._ui.toggle_spinner(active=False)
        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _consume(self, events: AuthEventStream) -> None:
        async for user in events:
            try:
                await self.handle_auth_change(user)
            except Exception:
                self._log.exception("auth_change_failed")

    async def start(self) -> None:
        """Show the auth form and start consuming auth events."""
        self._apply_labels()
        self._ui.show_auth()
        self._events = self._auth.events()
        self._consumer = asyncio.create_task(self._consume(self._events))
        self._log.info("session_started")

    async def stop(self) -> None:
        """Unsubscribe from auth events and cancel timers."""
        if self._events is not None:
            self._events.close()
            self._events = None
        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None
        self._stop_clock()
        self._log.info("session_stopped")
