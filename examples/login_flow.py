"""Example: guarding a sign-in flow and a flaky API call.

Run with:  python examples/login_flow.py
"""

from __future__ import annotations

import asyncio
import random

from lockstep.core.engine import ThrottleEngine
from lockstep.core.errors import (
    AccountLockedError,
    ClassifiedError,
    CooldownActiveError,
    ErrorKind,
    describe_error,
)
from lockstep.observability.logging import configure_logging, get_logger
from lockstep.patterns.retry import RetryPolicy

logger = get_logger("examples.login_flow")

PASSWORDS = {"user@example.com": "correct horse battery staple"}


async def sign_in(email: str, password: str) -> dict[str, str]:
    """Stand-in for a call to a hosted auth backend."""
    if random.random() < 0.2:
        raise ClassifiedError("auth backend timed out", ErrorKind.TIMEOUT, status=504)
    if PASSWORDS.get(email) != password:
        raise ClassifiedError("Invalid login credentials", ErrorKind.CREDENTIAL, status=401)
    return {"email": email, "session": "abc123"}


async def load_feed() -> list[str]:
    if random.random() < 0.6:
        raise ClassifiedError("upstream unavailable", ErrorKind.SERVER_ERROR, status=503)
    return ["post-1", "post-2"]


async def main() -> None:
    configure_logging(log_level="INFO", json_format=False)
    engine = ThrottleEngine()
    quick = RetryPolicy(max_retries=2, initial_delay_ms=50, max_delay_ms=200)

    for guess in ["hunter2", "letmein", "password", "123456", "qwerty", "one more"]:
        try:
            await engine.authenticate(
                "user@example.com", sign_in, quick, "user@example.com", guess,
                metadata={"ip_address": "203.0.113.7"},
            )
        except AccountLockedError as exc:
            logger.info("Blocked: %s", exc)
        except ClassifiedError as exc:
            logger.info("Sign-in failed: %s", describe_error(exc).user_message)

    for account in engine.lockouts.list_locked_accounts():
        logger.info(
            "%s locked at level %d for %dms",
            account.identifier,
            account.lockout_level,
            account.remaining_ms,
        )

    engine.lockouts.admin_unlock("user@example.com", actor="ops@example.com")

    for _ in range(8):
        try:
            posts = await engine.guard("load-feed", load_feed, quick)
            logger.info("Feed: %s", posts)
        except CooldownActiveError as exc:
            logger.info("Skipped: %s", exc)
        except ClassifiedError as exc:
            logger.info("Feed failed: %s", describe_error(exc).user_message)


if __name__ == "__main__":
    asyncio.run(main())
