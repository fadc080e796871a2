"""Escalating account lockout for authentication flows.

Tracks failed sign-in attempts per account identifier and escalates
through four lockout levels with fixed durations:

====== ==========
Level  Duration
====== ==========
1      15 minutes
2      60 minutes
3      24 hours
4      7 days
====== ==========

Failed attempts accumulate towards fixed cumulative thresholds: 5 lock
the account at level 1, 10 at level 2, 15 at level 3 and 20 at level 4.
The first five must fall inside a 15-minute window.  While a lockout is
running, further failures only escalate once the next threshold is
reached.  Once it has expired, the very next failure moves the account
up exactly one level, since expiry alone does not forget the level.  At
level 4 every failure renews the 7-day lockout.  Only a successful
sign-in or an administrative unlock clears the record.

"Locked" is a queryable state, never an exception: callers decide how
to reject the attempt.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from lockstep.core.clock import SystemClock
from lockstep.core.errors import format_cooldown

if TYPE_CHECKING:
    from lockstep.core.clock import Clock

logger = logging.getLogger(__name__)

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS

LOCKOUT_DURATIONS_MS: dict[int, int] = {
    1: 15 * _MINUTE_MS,
    2: 60 * _MINUTE_MS,
    3: 24 * _HOUR_MS,
    4: 7 * _DAY_MS,
}
# Cumulative failed attempts that trigger each level.
LOCKOUT_THRESHOLDS: dict[int, int] = {1: 5, 2: 10, 3: 15, 4: 20}
MAX_LOCKOUT_LEVEL = 4

INITIAL_LOCKOUT_THRESHOLD = LOCKOUT_THRESHOLDS[1]
ATTEMPT_WINDOW_MS = 15 * _MINUTE_MS


@dataclass
class LockoutRecord:
    """Failed-attempt history for one account."""

    identifier: str
    lockout_level: int = 0
    lockout_until: int | None = None
    recent_attempts: int = 0
    first_attempt_at: int | None = None
    last_attempt_at: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> LockoutRecord:
        return replace(self, metadata=dict(self.metadata))


@dataclass(frozen=True)
class LockoutStatus:
    """Point-in-time view of an account's lockout state."""

    identifier: str
    locked: bool
    lockout_level: int
    lockout_until: int | None
    remaining_ms: int
    recent_attempts: int
    attempts_remaining: int
    first_attempt_at: int | None = None


class AccountLockoutManager:
    """Thread-safe, in-process account lockout state machine.

    The manager performs no authorization of its own: whoever calls
    :meth:`admin_unlock` must already have checked that the caller may
    manage accounts.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._records: dict[str, LockoutRecord] = {}
        self._lock = threading.Lock()

    def record_failed_attempt(self, identifier: str, **metadata: Any) -> LockoutRecord:
        """Count a failed sign-in for *identifier* and escalate if needed.

        Keyword arguments (``ip_address``, ``user_agent``, ...) are kept
        with the record for the most recent attempt.  Returns a copy of
        the updated record.
        """
        now = self._clock.now_ms()
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                record = LockoutRecord(identifier=identifier, first_attempt_at=now)
                self._records[identifier] = record
            elif (
                record.lockout_level == 0
                and record.first_attempt_at is not None
                and now - record.first_attempt_at > ATTEMPT_WINDOW_MS
            ):
                # Stale attempts from an old window no longer count.
                record.recent_attempts = 0
                record.first_attempt_at = now

            record.recent_attempts += 1
            record.last_attempt_at = now
            record.metadata = dict(metadata)

            if self._escalation_due(record, now):
                self._escalate(record, now)

            return record.copy()

    def record_success(self, identifier: str) -> None:
        """Forget everything about *identifier* after a successful sign-in."""
        with self._lock:
            self._records.pop(identifier, None)

    def is_locked(self, identifier: str) -> bool:
        now = self._clock.now_ms()
        with self._lock:
            record = self._records.get(identifier)
            return record is not None and self._is_active(record, now)

    def get_record(self, identifier: str) -> LockoutRecord | None:
        with self._lock:
            record = self._records.get(identifier)
            return record.copy() if record else None

    def get_lockout_info(self, identifier: str) -> LockoutStatus:
        """Describe *identifier*'s lockout state, even if it has no record."""
        now = self._clock.now_ms()
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                return LockoutStatus(
                    identifier=identifier,
                    locked=False,
                    lockout_level=0,
                    lockout_until=None,
                    remaining_ms=0,
                    recent_attempts=0,
                    attempts_remaining=INITIAL_LOCKOUT_THRESHOLD,
                )
            return self._status(record, now)

    def list_locked_accounts(self, include_expired: bool = False) -> list[LockoutStatus]:
        """Return every currently locked account, longest lockout first.

        With *include_expired*, accounts whose lockout has elapsed but
        whose level is still remembered are listed too (``locked=False``).
        """
        now = self._clock.now_ms()
        with self._lock:
            statuses = [
                self._status(record, now)
                for record in self._records.values()
                if record.lockout_level > 0 and (include_expired or self._is_active(record, now))
            ]
        return sorted(statuses, key=lambda s: (s.remaining_ms, s.lockout_level), reverse=True)

    def admin_unlock(self, identifier: str, actor: str | None = None) -> bool:
        """Clear *identifier*'s record unconditionally.

        Returns ``True`` if there was anything to clear.
        """
        with self._lock:
            record = self._records.pop(identifier, None)
        if record is None:
            return False
        logger.info(
            "Account %s unlocked by %s (was level %d)",
            identifier,
            actor or "administrator",
            record.lockout_level,
            extra={"identifier": identifier, "actor": actor},
        )
        return True

    # ------------------------------------------------------------------

    @staticmethod
    def _is_active(record: LockoutRecord, now: int) -> bool:
        return (
            record.lockout_level > 0
            and record.lockout_until is not None
            and record.lockout_until > now
        )

    @classmethod
    def _escalation_due(cls, record: LockoutRecord, now: int) -> bool:
        if record.lockout_level == 0:
            return record.recent_attempts >= INITIAL_LOCKOUT_THRESHOLD
        if record.lockout_level == MAX_LOCKOUT_LEVEL or not cls._is_active(record, now):
            return True
        return record.recent_attempts >= LOCKOUT_THRESHOLDS[record.lockout_level + 1]

    def _status(self, record: LockoutRecord, now: int) -> LockoutStatus:
        locked = self._is_active(record, now)
        if record.lockout_level == MAX_LOCKOUT_LEVEL:
            attempts_remaining = 0
        elif record.lockout_level > 0 and not locked:
            attempts_remaining = 1
        else:
            next_threshold = LOCKOUT_THRESHOLDS[record.lockout_level + 1]
            attempts_remaining = max(0, next_threshold - record.recent_attempts)
        return LockoutStatus(
            identifier=record.identifier,
            locked=locked,
            lockout_level=record.lockout_level,
            lockout_until=record.lockout_until,
            remaining_ms=record.lockout_until - now if locked else 0,  # type: ignore[operator]
            recent_attempts=record.recent_attempts,
            attempts_remaining=attempts_remaining,
            first_attempt_at=record.first_attempt_at,
        )

    def _escalate(self, record: LockoutRecord, now: int) -> None:
        record.lockout_level = min(record.lockout_level + 1, MAX_LOCKOUT_LEVEL)
        duration = LOCKOUT_DURATIONS_MS[record.lockout_level]
        record.lockout_until = now + duration
        logger.warning(
            "Account %s locked at level %d for %s after %d failed attempt(s)",
            record.identifier,
            record.lockout_level,
            format_cooldown(duration),
            record.recent_attempts,
            extra={"identifier": record.identifier, "lockout_level": record.lockout_level},
        )
