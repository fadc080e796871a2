"""Retry with exponential backoff and optional jitter.

Provides a composable :func:`retry_with_backoff` helper that wraps any
async callable, re-invoking it on transient failures up to a
configurable limit, plus an authentication-specific variant that never
retries rejected credentials.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from lockstep.core.errors import (
    RetryCancelledError,
    is_credential_error,
    is_retryable_error,
)
from lockstep.patterns.backoff import compute_delay

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

logger = logging.getLogger(__name__)


def _noop_on_retry(error: BaseException, attempt: int, delay_ms: int) -> None:
    pass


def _noop_on_failure(error: BaseException, attempts: int) -> None:
    pass


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable configuration for retry behaviour.

    Delays are in milliseconds.  ``on_retry`` receives the error, the
    1-based number of the retry about to happen and the delay; ``on_failure``
    receives the final error and the total number of attempts made.
    """

    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    backoff_factor: float = 2.0
    jitter: bool = True
    is_retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)
    on_retry: Callable[[BaseException, int, int], None] = field(default=_noop_on_retry)
    on_failure: Callable[[BaseException, int], None] = field(default=_noop_on_failure)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be non-negative")
        if self.initial_delay_ms > self.max_delay_ms:
            raise ValueError("initial_delay_ms must not exceed max_delay_ms")

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1


# Fewer, slower retries so a struggling auth backend is not hammered.
AUTH_RETRY_POLICY = RetryPolicy(max_retries=2, initial_delay_ms=1500)


async def _wait(delay_ms: int, cancel_event: asyncio.Event | None) -> bool:
    """Sleep for *delay_ms*; return ``False`` if *cancel_event* fired first."""
    if cancel_event is None:
        await asyncio.sleep(delay_ms / 1000)
        return True
    if cancel_event.is_set():
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_ms / 1000)
    except TimeoutError:
        return True
    return False


async def retry_with_backoff(
    func: Callable[..., Coroutine[Any, Any, Any]],
    policy: RetryPolicy | None = None,
    *args: Any,
    cancel_event: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    **kwargs: Any,
) -> Any:
    """Execute *func* with exponential-backoff retries.

    The first attempt runs immediately.  A failure that the policy does
    not consider retryable, or the failure of the last permitted attempt,
    is re-raised unchanged after ``on_failure`` has been called.

    Setting *cancel_event* while waiting between attempts aborts the loop
    with :class:`RetryCancelledError`.  *sleep* replaces the wait (it is
    given seconds) and is mainly useful in tests; *cancel_event* is then
    checked once the replacement returns.
    """
    policy = policy or RetryPolicy()

    for attempt in range(policy.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            attempts = attempt + 1
            if attempt == policy.max_retries or not policy.is_retryable(exc):
                policy.on_failure(exc, attempts)
                raise

            delay_ms = compute_delay(attempt, policy)
            policy.on_retry(exc, attempts, delay_ms)
            logger.warning(
                "Attempt %d/%d failed (%s) - retrying in %dms",
                attempts,
                policy.total_attempts,
                exc,
                delay_ms,
            )

            if sleep is not None:
                await sleep(delay_ms / 1000)
                cancelled = cancel_event is not None and cancel_event.is_set()
            else:
                cancelled = not await _wait(delay_ms, cancel_event)
            if cancelled:
                logger.info("Retry cancelled after %d attempt(s)", attempts)
                raise RetryCancelledError(
                    f"Retry cancelled after {attempts} attempt(s)"
                ) from exc

    raise AssertionError("unreachable")  # pragma: no cover


async def retry_auth_operation(
    func: Callable[..., Coroutine[Any, Any, Any]],
    policy: RetryPolicy | None = None,
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Retry an authentication call.

    Uses :data:`AUTH_RETRY_POLICY` by default.  Credential errors are
    never retried, whatever the supplied predicate says, so automatic
    retries cannot amplify password guessing.
    """
    policy = policy or AUTH_RETRY_POLICY
    predicate = policy.is_retryable

    def _auth_retryable(error: BaseException) -> bool:
        return not is_credential_error(error) and predicate(error)

    return await retry_with_backoff(
        func, replace(policy, is_retryable=_auth_retryable), *args, **kwargs
    )


def retrying(policy: RetryPolicy | None = None) -> Callable[[Any], Any]:
    """Decorator form of :func:`retry_with_backoff`.

    Example::

        @retrying(RetryPolicy(max_retries=5))
        async def fetch_profile(user_id: str) -> dict: ...
    """

    def decorator(
        func: Callable[..., Coroutine[Any, Any, Any]],
    ) -> Callable[..., Coroutine[Any, Any, Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retry_with_backoff(func, policy, *args, **kwargs)

        return wrapper

    return decorator
