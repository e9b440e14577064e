"""Trading journal data layer.

Client-side data access and authentication for a trading journal backed by
Supabase (PostgREST tables, GoTrue auth, object storage).

Main components:
- JournalDataStore: resource facades with retry, deadlines and per-key queueing
- AuthService: sign in/up/out and current-user tracking
- SessionBridge: drives the UI from auth state changes
- JournalSettings: configuration with environment variable support
"""

from importlib.metadata import version

__version__ = version("journalstore")


from journalstore.auth import AuthService
from journalstore.datastore import JournalDataStore
from journalstore.models import JournalModels
from journalstore.session import SessionBridge
from journalstore.settings import JournalSettings
from journalstore.status import SyncStatusReporter
from journalstore.storage import PreferenceStore

__all__ = [
    "AuthService",
    "JournalDataStore",
    "JournalModels",
    "JournalSettings",
    "PreferenceStore",
    "SessionBridge",
    "SyncStatusReporter",
    "__version__",
]
