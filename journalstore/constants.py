"""Journal Constants - Centralized domain constants for journalstore.

All magic strings, table names, default values and enums are defined here.
Access via: from journalstore.constants import JournalConstants as c
Usage: c.Tables.TRADES, c.Status.ConnectionStatus.CONNECTED, etc.
"""

from enum import StrEnum
from typing import Final


class JournalConstants:
    """Centralized constants organized by domain namespaces.

    Namespaces are organized by business function, not data type.
    All constants are accessed via c.Namespace.CONSTANT or c.Namespace.Enum.VALUE
    """

    # ==================== REMOTE TABLES ====================
    class Tables:
        """Remote table and bucket names."""

        TRADES: Final = "trades"
        LEDGER: Final = "ledger"
        CHALLENGES: Final = "challenges"
        PARTIAL_EXITS: Final = "partial_exits"
        PROFILES: Final = "profiles"

        ATTACHMENTS_BUCKET: Final = "attachments"

        ID_FIELD: Final = "id"
        OWNER_FIELD: Final = "user_id"

    # ==================== OPERATIONS ====================
    class Operation:
        """Operation keys and resource identities."""

        class Verb(StrEnum):
            """Verbs used to build OperationKeys."""

            UPSERT = "upsert"
            DELETE = "delete"

        class Resource(StrEnum):
            """Resource names used to build OperationKeys."""

            TRADE = "trade"
            LEDGER = "ledger"
            CHALLENGE = "challenge"
            PARTIAL_EXIT = "partial_exit"

        KEY_TEMPLATE: Final = "{verb}-{resource}-{id}"

    # ==================== RETRY & RESILIENCE ====================
    class Resilience:
        """Retry, timeout and error classification."""

        # Write retry (upsert/delete)
        MAX_ATTEMPTS: Final = 3
        INITIAL_DELAY: Final = 1.0  # seconds
        MAX_DELAY: Final = 30.0  # seconds
        EXPONENTIAL_BASE: Final = 2.0

        # Read retry (list)
        READ_MAX_ATTEMPTS: Final = 3
        READ_INITIAL_DELAY: Final = 2.0  # seconds

        # Deadlines (seconds)
        TIMEOUT_FETCH: Final = 10.0
        TIMEOUT_WRITE: Final = 10.0
        TIMEOUT_BULK: Final = 10.0
        TIMEOUT_PARTIAL_EXIT: Final = 5.0

        class ErrorKind(StrEnum):
            """Closed set of error kinds surfaced by the data layer."""

            TIMEOUT = "timeout"
            REMOTE = "remote"
            AUTH_REQUIRED = "auth_required"
            NO_CONNECTION = "no_connection"

        # PostgREST / Postgres codes that never succeed on retry
        NON_RETRYABLE_CODES: Final = frozenset({
            "42501",  # insufficient_privilege (row level security)
            "28000",  # invalid_authorization_specification
            "28P01",  # invalid_password
        })
        NON_RETRYABLE_CODE_PREFIXES: Final = ("PGRST3",)  # JWT errors
        NON_RETRYABLE_HTTP_STATUS: Final = frozenset({401, 403})

    # ==================== SYNC STATUS ====================
    class Status:
        """Connection status and user notifications."""

        class ConnectionStatus(StrEnum):
            """Connection indicator states."""

            UNKNOWN = "unknown"
            CONNECTED = "connected"
            DISCONNECTED = "disconnected"
            SYNCING = "syncing"

        class Severity(StrEnum):
            """Toast notification severity."""

            INFO = "info"
            SUCCESS = "success"
            WARNING = "warning"
            ERROR = "error"

        TEXT_CONNECTED: Final = "Synced"
        TEXT_DISCONNECTED: Final = "Offline"
        TEXT_OTHER: Final = "Syncing..."

    # ==================== USER MESSAGES ====================
    class Messages:
        """User-facing notification texts."""

        SAVED: Final = "{label} saved successfully"
        DELETED: Final = "{label} deleted successfully"
        SAVE_FAILED: Final = "Failed to save {label} - please try again"
        DELETE_FAILED: Final = "Failed to delete {label} - please try again"
        LOAD_FAILED: Final = "Unable to load {plural} - please check your connection"
        TIMEOUT: Final = "Connection timeout - please try again"
        CONNECTION_ISSUE: Final = "Connection issue - please try again"
        DATABASE_ERROR: Final = "Database error: {message}"
        NOT_CONNECTED: Final = "No database connection available"
        NOT_AUTHENTICATED: Final = "User not authenticated"
        NO_IDS: Final = "No {resource} IDs provided for deletion"

        SIGNED_OUT: Final = "You have been signed out."
        SIGNUP_WELCOME: Final = (
            "Welcome! Please check your email to confirm your account."
        )
        AUTH_FAILED: Final = "Authentication failed. Please try again."
        LOADING: Final = "Loading..."

    # ==================== ENTITY SHAPES ====================
    class Entities:
        """Row shaping rules applied before transmission."""

        TRADE_UI_ONLY_FIELDS: Final = frozenset({"status"})

        CHALLENGE_FIELDS: Final = (
            "id",
            "title",
            "description",
            "timeframe",
            "maxRisk",
            "startDate",
            "endDate",
            "createdAt",
            "success",
            "startingCapital",
            "targetCapital",
        )
        CHALLENGE_COMPLETED: Final = "completed"
        CHALLENGE_ACTIVE: Final = "active"

        DEFAULT_PROFILE_NAME: Final = "New User"

        # Sort columns
        TRADES_ORDER: Final = "entry_date"
        LEDGER_ORDER: Final = "date"
        CHALLENGES_ORDER: Final = "createdAt"
        PARTIAL_EXITS_ORDER: Final = "exit_date"
        CALENDAR_DATE_FIELD: Final = "exit_date"
        PARTIAL_EXIT_TRADE_FIELD: Final = "trade_id"

    # ==================== QUERY CONTRACT ====================
    class Query:
        """Filter operators understood by the remote table collaborator."""

        class FilterOp(StrEnum):
            """Supported filter operators."""

            EQ = "eq"
            NEQ = "neq"
            GTE = "gte"
            LTE = "lte"
            IN = "in"

    # ==================== LOCAL PREFERENCES ====================
    class Preferences:
        """Persisted local key/value state."""

        THEME_KEY: Final = "theme"
        CURRENT_PAGE_KEY: Final = "currentPage"
        PRESERVED_KEYS: Final = (THEME_KEY, CURRENT_PAGE_KEY)
        DATA_KEYS: Final = ("trades", "ledger")
        PARTIAL_EXITS_PREFIX: Final = "partial_exits_"
        DEFAULT_PAGE: Final = "dashboard"
        DEFAULT_PATH: Final = "~/.journalstore/preferences.json"

    # ==================== SESSION ====================
    class Session:
        """Authentication session state machine."""

        class State(StrEnum):
            """Session states."""

            LOGGED_OUT = "logged_out"
            LOGGED_IN = "logged_in"

        class Transition(StrEnum):
            """Classification of an auth change event."""

            REAL_LOGIN = "real_login"
            CREDENTIAL_REFRESH = "credential_refresh"
            LOGOUT = "logout"

        class AuthMode(StrEnum):
            """Auth form mode."""

            SIGN_IN = "signin"
            SIGN_UP = "signup"

        SIGN_IN_TITLE: Final = "Sign In"
        SIGN_IN_BUTTON: Final = "Sign In"
        SIGN_IN_TOGGLE: Final = "Don't have an account? Sign up"
        SIGN_UP_TITLE: Final = "Sign Up"
        SIGN_UP_BUTTON: Final = "Create Account"
        SIGN_UP_TOGGLE: Final = "Already have an account? Sign in"

        CLOCK_INTERVAL: Final = 1.0  # seconds
