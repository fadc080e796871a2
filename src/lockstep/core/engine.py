"""Throttle engine: the single entry point callers hold on to.

Wires the failure tracker, the account lockout manager and the retry
executor together around one shared clock, following the flow

    check lockout / cooldown → run through retry executor → report outcome
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from lockstep.auth.lockout import AccountLockoutManager
from lockstep.core.clock import SystemClock
from lockstep.core.errors import (
    TRANSIENT_KINDS,
    AccountLockedError,
    CooldownActiveError,
    ErrorKind,
    classify_error,
)
from lockstep.patterns.circuit_breaker import FailureTracker
from lockstep.patterns.retry import retry_auth_operation

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from lockstep.config import Settings
    from lockstep.core.clock import Clock
    from lockstep.patterns.circuit_breaker import CooldownProfile
    from lockstep.patterns.retry import RetryPolicy

logger = logging.getLogger(__name__)

AUTH_OPERATION_KEY = "auth"

# Rejections that prove the auth backend is up and answering.
_BACKEND_ANSWERED = frozenset({ErrorKind.CREDENTIAL, ErrorKind.VALIDATION})


class ThrottleEngine:
    """Owns all throttling state for one process.

    Construct once and pass it to the code paths that need it; nothing
    here is a module-level global.
    """

    def __init__(
        self,
        profile: CooldownProfile | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.tracker = FailureTracker(profile=profile, clock=self.clock)
        self.lockouts = AccountLockoutManager(clock=self.clock)

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> ThrottleEngine:
        return cls(profile=settings.profile, clock=clock)

    async def guard(
        self,
        operation_key: str,
        func: Callable[..., Coroutine[Any, Any, Any]],
        policy: RetryPolicy | None = None,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run a generic operation behind its cooldown and with retries."""
        return await self.tracker.call(operation_key, func, policy, *args, **kwargs)

    async def authenticate(
        self,
        identifier: str,
        func: Callable[..., Coroutine[Any, Any, Any]],
        policy: RetryPolicy | None = None,
        *args: Any,
        metadata: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Run a sign-in call for *identifier*.

        Raises :class:`AccountLockedError` without calling *func* if the
        account is locked, or :class:`CooldownActiveError` while the auth
        backend itself is cooling down.  Rejected credentials count towards the
        lockout.  Only transient failures (network, timeout, rate limit,
        server error) feed the ``auth`` cooldown; credential and validation
        rejections show the backend is answering and reset it.
        """
        status = self.lockouts.get_lockout_info(identifier)
        if status.locked:
            logger.info("Rejected sign-in for locked account %s", identifier)
            raise AccountLockedError(identifier, status.remaining_ms, status.lockout_level)

        remaining = self.tracker.remaining_cooldown(AUTH_OPERATION_KEY)
        if remaining > 0:
            raise CooldownActiveError(AUTH_OPERATION_KEY, remaining)

        try:
            result = await retry_auth_operation(func, policy, *args, **kwargs)
        except Exception as exc:
            kind = classify_error(exc)
            if kind is ErrorKind.CREDENTIAL:
                self.lockouts.record_failed_attempt(identifier, **(metadata or {}))
            if kind in TRANSIENT_KINDS:
                self.tracker.record_result(AUTH_OPERATION_KEY, success=False)
            elif kind in _BACKEND_ANSWERED:
                self.tracker.record_result(AUTH_OPERATION_KEY, success=True)
            raise

        self.lockouts.record_success(identifier)
        self.tracker.record_result(AUTH_OPERATION_KEY, success=True)
        return result
