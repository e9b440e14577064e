"""
Custom exceptions for journalstore.

Every error carries a closed ``ErrorKind`` and a ``retryable`` flag set by
the code that raised it (remote call wrapper or collaborator adapter), so
retry decisions never depend on message text.

Exception Hierarchy:
    JournalError
    ├── JournalTimeoutError
    ├── RemoteError
    │   └── AuthenticationError
    ├── AuthRequiredError
    ├── NoConnectionError
    └── DatabaseError
"""

from __future__ import annotations

from typing import Any

from journalstore.constants import JournalConstants as c

ErrorKind = c.Resilience.ErrorKind


class JournalError(Exception):
    """
    Base exception for all journalstore errors.

    Attributes:
        message: Human-readable error description
        kind: Closed error classification
        retryable: Whether repeating the call may succeed
        details: Optional additional error details
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.REMOTE,
        *,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.kind = kind
        self.retryable = retryable
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with details."""
        if not self.details:
            return self.message
        details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({details_str})"


class JournalTimeoutError(JournalError):
    """
    Raised when a remote call exceeds its deadline.

    Never retried: the call may still have been applied remotely.
    """

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            f"{operation} timed out after {round(timeout * 1000)}ms",
            ErrorKind.TIMEOUT,
            retryable=False,
        )


class RemoteError(JournalError):
    """
    Raised when the remote service rejects a call.

    The adapter decides ``retryable``: transient server failures are
    retryable, authorization and permission failures are not.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        retryable: bool = True,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if code:
            details["code"] = code
        if status:
            details["status"] = status
        self.code = code
        self.status = status
        super().__init__(
            message, ErrorKind.REMOTE, retryable=retryable, details=details
        )


class AuthenticationError(RemoteError):
    """
    Raised when the authentication provider rejects credentials.

    This includes:
    - Invalid email or password
    - Unconfirmed account
    - Sign-up rejected by the provider
    """

    def __init__(self, message: str = "Authentication failed", **kwargs: Any) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


class AuthRequiredError(JournalError):
    """Raised when an owner-scoped write runs without an authenticated user."""

    def __init__(self, message: str = c.Messages.NOT_AUTHENTICATED) -> None:
        super().__init__(message, ErrorKind.AUTH_REQUIRED, retryable=False)


class NoConnectionError(JournalError):
    """
    Raised when the remote collaborator is unavailable.

    ``retryable`` is False when the store was never started (programming
    error) and True for transport failures reported by the adapter.
    """

    def __init__(
        self,
        message: str = c.Messages.NOT_CONNECTED,
        *,
        retryable: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message, ErrorKind.NO_CONNECTION, retryable=retryable, **kwargs
        )


class DatabaseError(JournalError):
    """
    Raised by write facades after retries are exhausted.

    Wraps the last remote error; ``kind`` is inherited from the cause.
    """

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        reason = cause.message if isinstance(cause, JournalError) else str(cause)
        kind = cause.kind if isinstance(cause, JournalError) else ErrorKind.REMOTE
        super().__init__(
            c.Messages.DATABASE_ERROR.format(message=reason),
            kind,
            retryable=False,
        )
