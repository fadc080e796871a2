"""Account protection for authentication flows.

Usage:
    from lockstep.auth import AccountLockoutManager

    lockouts = AccountLockoutManager()

    if lockouts.is_locked(email):
        ...  # reject before even contacting the auth backend

    try:
        session = await sign_in(email, password)
    except InvalidCredentials:
        lockouts.record_failed_attempt(email, ip_address=client_ip)
        raise
    lockouts.record_success(email)
"""

from lockstep.auth.lockout import (
    ATTEMPT_WINDOW_MS,
    INITIAL_LOCKOUT_THRESHOLD,
    LOCKOUT_DURATIONS_MS,
    LOCKOUT_THRESHOLDS,
    MAX_LOCKOUT_LEVEL,
    AccountLockoutManager,
    LockoutRecord,
    LockoutStatus,
)

__all__ = [
    "ATTEMPT_WINDOW_MS",
    "INITIAL_LOCKOUT_THRESHOLD",
    "LOCKOUT_DURATIONS_MS",
    "LOCKOUT_THRESHOLDS",
    "MAX_LOCKOUT_LEVEL",
    "AccountLockoutManager",
    "LockoutRecord",
    "LockoutStatus",
]
