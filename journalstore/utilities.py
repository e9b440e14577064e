"""Centralized resilience utilities for journalstore.

Minimal structure with maximum integration:
- Uses JournalSettings for all configuration (no separate config classes)
- Uses journalstore.exceptions for the structured error hierarchy
- Single implementation of timeout, retry and per-key serialization

Hierarchy Level: 2
- Imports: JournalSettings, JournalConstants, exceptions
- Used by: datastore.py, auth.py

Usage:

    # Deadline-bounded remote call
    rows = await JournalUtilities.RetryStrategy.call_with_timeout(
        lambda: db.select("trades"), 10.0, "Fetch trades"
    )

    # Retry with exponential backoff
    policy = JournalUtilities.RetryPolicy.for_writes(settings)
    await JournalUtilities.RetryStrategy.async_retry_with_backoff(
        factory, policy, "Save trade"
    )

    # Per-key serialization
    queue = JournalUtilities.OperationQueue()
    await queue.run("delete-trade-7", factory)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from journalstore.exceptions import JournalError, JournalTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable

    from journalstore.settings import JournalSettings
    from journalstore.types import JournalTypes as t
    from journalstore.types import T


log = logging.getLogger(__name__)


class JournalUtilities:
    """Centralized resilience utilities for journalstore.

    Minimal structure:
    - ErrorClassifier: structured retriability decisions
    - RetryPolicy: attempt budget and backoff schedule
    - RetryStrategy: timeout wrapper and retry executor
    - OperationQueue: per-key operation serialization
    """

    # =========================================================================
    # ERROR CLASSIFIER
    # =========================================================================

    class ErrorClassifier:
        """Error classification for remote operations.

        All methods are static - no state stored.

        Used by:
        - RetryPolicy: default ``should_retry`` predicate
        - datastore facades: choosing the user-facing failure message
        """

        @staticmethod
        def is_retryable(error: BaseException) -> bool:
            """Check if an exception should trigger retry.

            Args:
                error: Exception to check.

            Returns:
                True if repeating the call may succeed.

            """
            if isinstance(error, JournalError):
                return error.retryable

            # Deadlines are never retried: the call may have been applied
            if isinstance(error, TimeoutError):
                return False

            if isinstance(error, (ConnectionError, OSError)):
                return True

            # Unknown failures follow the provider default: retry
            return True

        @staticmethod
        def is_timeout(error: BaseException) -> bool:
            """Check if an exception is a deadline failure."""
            return isinstance(error, (JournalTimeoutError, TimeoutError))

    # =========================================================================
    # RETRY POLICY
    # =========================================================================

    @dataclass(frozen=True)
    class RetryPolicy:
        """Attempt budget and backoff schedule.

        ``max_attempts`` counts total attempts, not retries: a policy with
        max_attempts=3 makes at most three calls and sleeps twice.

        Attributes:
            max_attempts: Total attempts (>= 1).
            base_delay: Delay before the second attempt, in seconds.
            exponential_base: Growth factor between delays.
            max_delay: Upper bound for a single delay.
            jitter: Multiply each delay by a random factor in [0.5, 1.5).
            should_retry: Predicate deciding if an error is worth retrying.

        Example:
            >>> policy = JournalUtilities.RetryPolicy(max_attempts=3, base_delay=1.0)
            >>> [policy.delay(i) for i in range(2)]
            [1.0, 2.0]

        """

        max_attempts: int = 3
        base_delay: float = 1.0
        exponential_base: float = 2.0
        max_delay: float | None = None
        jitter: bool = False
        should_retry: Callable[[BaseException], bool] = field(
            default=lambda e: JournalUtilities.ErrorClassifier.is_retryable(e),
            compare=False,
        )

        def __post_init__(self) -> None:
            """Validate the attempt budget."""
            if self.max_attempts < 1:
                msg = f"max_attempts must be >= 1, got {self.max_attempts}"
                raise ValueError(msg)

        def delay(self, attempt: int) -> float:
            """Backoff before the attempt following ``attempt`` (0-indexed)."""
            delay = self.base_delay * (self.exponential_base**attempt)
            if self.max_delay is not None:
                delay = min(delay, self.max_delay)
            if self.jitter:
                delay *= 0.5 + random.random()  # noqa: S311
            return delay

        @classmethod
        def for_writes(cls, config: JournalSettings) -> JournalUtilities.RetryPolicy:
            """Policy for queued upsert/delete operations."""
            return cls(
                max_attempts=config.retry_max_attempts,
                base_delay=config.retry_initial_delay,
                exponential_base=config.retry_exponential_base,
                max_delay=config.retry_max_delay,
                jitter=config.retry_jitter,
            )

        @classmethod
        def for_reads(cls, config: JournalSettings) -> JournalUtilities.RetryPolicy:
            """Policy for list() operations."""
            return cls(
                max_attempts=config.read_retry_max_attempts,
                base_delay=config.read_retry_initial_delay,
                exponential_base=config.retry_exponential_base,
                max_delay=config.retry_max_delay,
                jitter=config.retry_jitter,
            )

    # =========================================================================
    # RETRY STRATEGY
    # =========================================================================

    class RetryStrategy:
        """Timeout and retry strategies for async operations.

        All methods are static - no state stored.

        Used by:
        - datastore facades: every remote call is deadline-bounded and
          (except inserts and bulk deletes) retried
        """

        @staticmethod
        async def call_with_timeout(
            coro_factory: t.CoroFactory[T],
            timeout: float,  # noqa: ASYNC109
            operation_name: str = "operation",
        ) -> T:
            """Execute a remote call under a deadline.

            The underlying call is cancelled when the deadline elapses, so a
            late result is never observed.

            Args:
                coro_factory: Callable that returns the awaitable.
                timeout: Deadline in seconds.
                operation_name: Human-readable name carried by the error.

            Returns:
                Result of the call.

            Raises:
                ValueError: If timeout <= 0.
                JournalTimeoutError: If the deadline elapses first.

            """
            if timeout <= 0:
                msg = f"timeout must be > 0, got {timeout}"
                raise ValueError(msg)

            try:
                return await asyncio.wait_for(coro_factory(), timeout=timeout)
            except TimeoutError as e:
                log.debug("%s cancelled after %.3fs timeout", operation_name, timeout)
                raise JournalTimeoutError(operation_name, timeout) from e

        @staticmethod
        async def async_retry_with_backoff(
            coro_factory: t.CoroFactory[T],
            policy: JournalUtilities.RetryPolicy,
            operation_name: str = "operation",
            *,
            on_retry: Callable[[int, BaseException], None] | None = None,
        ) -> T:
            """Execute async operation with exponential backoff retry.

            Args:
                coro_factory: Callable that returns an awaitable (not a coroutine).
                policy: Attempt budget, schedule and retry predicate.
                operation_name: Name for logging purposes.
                on_retry: Optional callback invoked with the failed attempt
                    index and error before each backoff sleep.

            Returns:
                Result of successful operation.

            Raises:
                Exception: The last error, unchanged, once the error is not
                    retryable or the attempt budget is exhausted.

            """
            for attempt in range(policy.max_attempts):
                try:
                    return await coro_factory()
                except Exception as e:
                    if not policy.should_retry(e):
                        log.warning(
                            "'%s' failed with non-retryable error: %s",
                            operation_name,
                            e,
                        )
                        raise

                    if attempt == policy.max_attempts - 1:
                        log.error(
                            "'%s' failed after %d attempts. Last error: %s",
                            operation_name,
                            policy.max_attempts,
                            e,
                        )
                        raise

                    delay = policy.delay(attempt)
                    log.warning(
                        "'%s' attempt %d/%d failed: %s. Retry in %.2fs",
                        operation_name,
                        attempt + 1,
                        policy.max_attempts,
                        e,
                        delay,
                    )
                    if on_retry is not None:
                        on_retry(attempt, e)
                    await asyncio.sleep(delay)

            # Should not reach here, but satisfy type checker
            msg = f"Retry failed for '{operation_name}' with no attempt made"
            raise RuntimeError(msg)

    # =========================================================================
    # OPERATION QUEUE - PER-KEY SERIALIZATION
    # =========================================================================

    class OperationQueue:
        """Per-key operation queue with result sharing.

        IMPORTANT: This serializes by key, it does not order across keys.
        - At most one execution per key is in flight
        - Callers arriving while a key is pending do NOT start new work;
          they wait for the in-flight execution and receive its outcome
        - Different keys run concurrently

        Lifecycle of a key:
        1. run(key) with key idle -> key added to pending, factory awaited
        2. run(key) while pending -> waiter future appended, factory NOT called
        3. factory settles -> every waiter settled in arrival order with the
           same result or exception
        4. finally -> waiters cleared, key removed (also on failure)

        Usage:
            queue = JournalUtilities.OperationQueue()
            ok = await queue.run("upsert-trade-42", save_trade)
        """

        def __init__(self) -> None:
            """Initialize an empty queue."""
            self._pending: set[str] = set()
            self._waiters: dict[str, list[asyncio.Future[object]]] = {}

        async def run(self, key: str, operation: t.CoroFactory[T]) -> T:
            """Run ``operation`` for ``key`` or join the in-flight execution.

            Args:
                key: OperationKey identifying the logical mutation target.
                operation: Callable that returns the awaitable, already
                    wrapped with retry and timeout by the caller.

            Returns:
                Result of the single execution for ``key``.

            Raises:
                Exception: The error of the single execution for ``key``.

            """
            if key in self._pending:
                future: asyncio.Future[object] = (
                    asyncio.get_running_loop().create_future()
                )
                self._waiters.setdefault(key, []).append(future)
                log.debug(
                    "Operation joined in-flight execution: %s (%d waiting)",
                    key,
                    len(self._waiters[key]),
                )
                return await future  # type: ignore[return-value]

            self._pending.add(key)
            try:
                result = await operation()
            except asyncio.CancelledError:
                for waiter in self._waiters.get(key, []):
                    waiter.cancel()
                raise
            except Exception as e:
                for waiter in self._waiters.get(key, []):
                    if not waiter.done():
                        waiter.set_exception(e)
                raise
            else:
                for waiter in self._waiters.get(key, []):
                    if not waiter.done():
                        waiter.set_result(result)
                return result
            finally:
                self._waiters.pop(key, None)
                self._pending.discard(key)

        def is_pending(self, key: str) -> bool:
            """Check if an execution for ``key`` is in flight."""
            return key in self._pending

        def waiter_count(self, key: str) -> int:
            """Number of callers waiting on the in-flight execution."""
            return len(self._waiters.get(key, []))

        @property
        def pending_keys(self) -> frozenset[str]:
            """Keys currently executing."""
            return frozenset(self._pending)

        @property
        def pending_count(self) -> int:
            """Number of keys currently executing."""
            return len(self._pending)
