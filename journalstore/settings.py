"""journalstore configuration using Pydantic Settings.

Automatic environment variable loading with JOURNAL_ prefix.
Single source of truth for all configuration across the project.

Hierarchy Level: 1
- Imports: JournalConstants (Level 0)
- Used by: JournalUtilities, datastore.py, session.py, supabase_adapter.py

Configuration Sources (precedence high to low):
1. Environment variables (JOURNAL_*)
2. .env file
3. Defaults defined here

Usage:
    >>> from journalstore.settings import JournalSettings
    >>> config = JournalSettings()  # loads from env
    >>> print(config.timeout_fetch)  # 10.0 or env override
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from journalstore.constants import JournalConstants as c


class JournalSettings(BaseSettings):
    """Trading journal data layer configuration with automatic env loading.

    All fields auto-load from environment variables with JOURNAL_ prefix.

    Usage:
        config = JournalSettings()  # loads from env
        config = JournalSettings(timeout_fetch=2.0)  # override
    """

    model_config = SettingsConfigDict(
        env_prefix="JOURNAL_",
        frozen=True,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # =========================================================================
    # REMOTE SERVICE
    # =========================================================================
    supabase_url: str = ""
    supabase_key: str = ""
    attachments_bucket: str = c.Tables.ATTACHMENTS_BUCKET

    # =========================================================================
    # TIMEOUTS (in seconds)
    # =========================================================================
    timeout_fetch: float = c.Resilience.TIMEOUT_FETCH
    timeout_write: float = c.Resilience.TIMEOUT_WRITE
    timeout_bulk: float = c.Resilience.TIMEOUT_BULK
    timeout_partial_exit: float = c.Resilience.TIMEOUT_PARTIAL_EXIT

    # =========================================================================
    # RETRY SETTINGS - writes (upsert/delete)
    # =========================================================================
    retry_max_attempts: int = c.Resilience.MAX_ATTEMPTS
    retry_initial_delay: float = c.Resilience.INITIAL_DELAY
    retry_max_delay: float = c.Resilience.MAX_DELAY
    retry_exponential_base: float = c.Resilience.EXPONENTIAL_BASE
    retry_jitter: bool = False

    # =========================================================================
    # RETRY SETTINGS - reads (list)
    # =========================================================================
    read_retry_max_attempts: int = c.Resilience.READ_MAX_ATTEMPTS
    read_retry_initial_delay: float = c.Resilience.READ_INITIAL_DELAY

    # =========================================================================
    # SESSION / UI
    # =========================================================================
    clock_interval: float = c.Session.CLOCK_INTERVAL
    default_page: str = c.Preferences.DEFAULT_PAGE
    preferences_path: str = c.Preferences.DEFAULT_PATH

    @property
    def has_credentials(self) -> bool:
        """Check if the remote service URL and key are configured."""
        return bool(self.supabase_url and self.supabase_key)
