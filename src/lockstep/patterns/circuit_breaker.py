"""Per-operation failure tracking with escalating cooldowns.

A permissive circuit breaker: it never blocks an operation forever, it
only imposes a waiting period that grows with consecutive failures.
State is keyed per logical operation so a failing dependency does not
throttle unrelated calls.  Two states per key: **Clear → Cooling**, and
any recorded success returns the key to **Clear**.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from lockstep.core.clock import SystemClock
from lockstep.core.errors import CooldownActiveError, format_cooldown
from lockstep.patterns.retry import retry_with_backoff

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from lockstep.core.clock import Clock
    from lockstep.patterns.retry import RetryPolicy

logger = logging.getLogger(__name__)


class CooldownState(enum.Enum):
    CLEAR = "clear"
    COOLING = "cooling"


@dataclass(frozen=True)
class CooldownProfile:
    """Tuning parameters for cooldown escalation."""

    failure_threshold: int = 5
    base_cooldown_ms: int = 5_000
    max_cooldown_ms: int = 5 * 60 * 1000

    def cooldown_for(self, count: int) -> int:
        """Cooldown length after the *count*-th consecutive failure."""
        exponent = count - self.failure_threshold
        if exponent < 0:
            return 0
        # Past ~63 doublings the cap always wins; avoid huge ints.
        if exponent >= 63:
            return self.max_cooldown_ms
        return min(self.base_cooldown_ms * 2**exponent, self.max_cooldown_ms)


# Generic operations: short waits, capped at five minutes.
FAST_COOLDOWN = CooldownProfile(base_cooldown_ms=5_000, max_cooldown_ms=5 * 60 * 1000)
# Higher-stakes operations: longer waits, capped at a day.
SLOW_COOLDOWN = CooldownProfile(base_cooldown_ms=30_000, max_cooldown_ms=24 * 60 * 60 * 1000)

COOLDOWN_PROFILES: dict[str, CooldownProfile] = {
    "fast": FAST_COOLDOWN,
    "slow": SLOW_COOLDOWN,
}


@dataclass
class FailureRecord:
    """Consecutive-failure bookkeeping for one operation key."""

    count: int = 0
    last_failure_at: int | None = None
    cooldown_until: int | None = None


class FailureTracker:
    """Thread-safe keyed circuit breaker.

    Records are created lazily on the first failure for a key and live
    for the lifetime of the tracker.  All reads and writes go through a
    single :class:`threading.Lock`, so concurrent failures are never
    under-counted whether callers run on threads or on an event loop.
    """

    def __init__(
        self,
        profile: CooldownProfile | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._profile = profile or FAST_COOLDOWN
        self._clock = clock or SystemClock()
        self._records: dict[str, FailureRecord] = {}
        self._lock = threading.Lock()

    @property
    def profile(self) -> CooldownProfile:
        return self._profile

    def should_attempt(self, operation_key: str) -> bool:
        """Return ``False`` while *operation_key* is cooling down."""
        return self.remaining_cooldown(operation_key) == 0

    def remaining_cooldown(self, operation_key: str) -> int:
        """Milliseconds until *operation_key* may be attempted again."""
        with self._lock:
            record = self._records.get(operation_key)
            if record is None or record.cooldown_until is None:
                return 0
            return max(0, record.cooldown_until - self._clock.now_ms())

    def state(self, operation_key: str) -> CooldownState:
        if self.should_attempt(operation_key):
            return CooldownState.CLEAR
        return CooldownState.COOLING

    def record_result(self, operation_key: str, success: bool) -> None:
        """Feed the outcome of an attempt back into the tracker."""
        if success:
            self._record_success(operation_key)
        else:
            self._record_failure(operation_key)

    def get_record(self, operation_key: str) -> FailureRecord | None:
        """Return a copy of the record for *operation_key*, if any."""
        with self._lock:
            record = self._records.get(operation_key)
            return replace(record) if record else None

    def reset(self, operation_key: str) -> None:
        with self._lock:
            self._records.pop(operation_key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def cooling_keys(self) -> dict[str, int]:
        """Map every key currently cooling down to its remaining milliseconds."""
        now = self._clock.now_ms()
        with self._lock:
            return {
                key: record.cooldown_until - now
                for key, record in self._records.items()
                if record.cooldown_until is not None and record.cooldown_until > now
            }

    async def call(
        self,
        operation_key: str,
        func: Callable[..., Coroutine[Any, Any, Any]],
        policy: RetryPolicy | None = None,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Invoke *func* through the tracker and the retry executor.

        Raises :class:`CooldownActiveError` if *operation_key* is cooling
        down.  The terminal outcome of the retry loop is recorded once.
        """
        remaining = self.remaining_cooldown(operation_key)
        if remaining > 0:
            raise CooldownActiveError(operation_key, remaining)

        try:
            result = await retry_with_backoff(func, policy, *args, **kwargs)
        except Exception:
            self.record_result(operation_key, success=False)
            raise

        self.record_result(operation_key, success=True)
        return result

    # ------------------------------------------------------------------

    def _record_success(self, operation_key: str) -> None:
        with self._lock:
            record = self._records.get(operation_key)
            if record is None:
                return
            if record.count:
                logger.info(
                    "Operation %s recovered after %d failure(s)", operation_key, record.count
                )
            record.count = 0
            record.cooldown_until = None

    def _record_failure(self, operation_key: str) -> None:
        now = self._clock.now_ms()
        with self._lock:
            record = self._records.setdefault(operation_key, FailureRecord())
            record.count += 1
            record.last_failure_at = now
            if record.count >= self._profile.failure_threshold:
                cooldown = self._profile.cooldown_for(record.count)
                record.cooldown_until = now + cooldown
                logger.warning(
                    "Operation %s failed %d times in a row - cooling down for %s",
                    operation_key,
                    record.count,
                    format_cooldown(cooldown),
                    extra={"operation_key": operation_key, "cooldown_ms": cooldown},
                )
