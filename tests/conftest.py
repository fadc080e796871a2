"""Shared test fixtures."""

from __future__ import annotations

import pytest

from lockstep.auth.lockout import AccountLockoutManager
from lockstep.core.clock import ManualClock
from lockstep.core.engine import ThrottleEngine
from lockstep.patterns.circuit_breaker import FailureTracker


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def tracker(clock: ManualClock) -> FailureTracker:
    return FailureTracker(clock=clock)


@pytest.fixture()
def lockouts(clock: ManualClock) -> AccountLockoutManager:
    return AccountLockoutManager(clock=clock)


@pytest.fixture()
def engine(clock: ManualClock) -> ThrottleEngine:
    return ThrottleEngine(clock=clock)
