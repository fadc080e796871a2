"""Exponential backoff delay calculation."""

from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lockstep.patterns.retry import RetryPolicy

JITTER_LOW = 0.5
JITTER_HIGH = 1.5


def compute_delay(
    attempt: int,
    policy: RetryPolicy,
    rng: random.Random | None = None,
) -> int:
    """Return the delay in milliseconds before retry number *attempt*.

    The raw delay ``initial_delay_ms * backoff_factor ** attempt`` is
    capped at ``max_delay_ms``.  With jitter enabled it is scaled by a
    uniform factor in ``[0.5, 1.5]`` and capped again, so the result never
    exceeds the policy's ceiling.
    """
    if attempt < 0:
        raise ValueError("attempt must be non-negative")

    try:
        raw = policy.initial_delay_ms * (policy.backoff_factor**attempt)
    except OverflowError:
        raw = math.inf
    delay = min(raw, policy.max_delay_ms)

    if policy.jitter:
        factor = (rng or random).uniform(JITTER_LOW, JITTER_HIGH)
        delay = min(delay * factor, policy.max_delay_ms)

    return math.floor(delay)
