"""Unit tests for the per-operation failure tracker."""

from __future__ import annotations

import threading

import pytest

from lockstep.core.clock import ManualClock
from lockstep.core.errors import ClassifiedError, CooldownActiveError, ErrorKind
from lockstep.patterns.circuit_breaker import (
    COOLDOWN_PROFILES,
    FAST_COOLDOWN,
    SLOW_COOLDOWN,
    CooldownProfile,
    CooldownState,
    FailureTracker,
)
from lockstep.patterns.retry import RetryPolicy


async def _success() -> str:
    return "ok"


async def _failure() -> None:
    raise ClassifiedError("validation failed", ErrorKind.VALIDATION)


def _fail(tracker: FailureTracker, key: str, times: int) -> None:
    for _ in range(times):
        tracker.record_result(key, success=False)


class TestCooldownProfile:
    def test_presets(self) -> None:
        assert FAST_COOLDOWN.failure_threshold == 5
        assert FAST_COOLDOWN.base_cooldown_ms == 5_000
        assert FAST_COOLDOWN.max_cooldown_ms == 300_000
        assert SLOW_COOLDOWN.failure_threshold == 5
        assert SLOW_COOLDOWN.base_cooldown_ms == 30_000
        assert SLOW_COOLDOWN.max_cooldown_ms == 86_400_000
        assert COOLDOWN_PROFILES == {"fast": FAST_COOLDOWN, "slow": SLOW_COOLDOWN}

    def test_escalation(self) -> None:
        assert FAST_COOLDOWN.cooldown_for(4) == 0
        assert FAST_COOLDOWN.cooldown_for(5) == 5_000
        assert FAST_COOLDOWN.cooldown_for(6) == 10_000
        assert FAST_COOLDOWN.cooldown_for(7) == 20_000

    def test_ceiling(self) -> None:
        assert FAST_COOLDOWN.cooldown_for(50) == 300_000
        assert SLOW_COOLDOWN.cooldown_for(50) == 86_400_000
        assert SLOW_COOLDOWN.cooldown_for(10_000) == 86_400_000


class TestFailureTracker:
    def test_unknown_key_is_clear(self, tracker: FailureTracker) -> None:
        assert tracker.should_attempt("fetch-profile")
        assert tracker.remaining_cooldown("fetch-profile") == 0
        assert tracker.state("fetch-profile") == CooldownState.CLEAR
        assert tracker.get_record("fetch-profile") is None

    def test_four_failures_still_allowed(self, tracker: FailureTracker) -> None:
        _fail(tracker, "fetch-profile", 4)
        assert tracker.should_attempt("fetch-profile")
        record = tracker.get_record("fetch-profile")
        assert record is not None
        assert record.count == 4
        assert record.cooldown_until is None

    def test_fifth_failure_starts_cooldown(
        self, tracker: FailureTracker, clock: ManualClock
    ) -> None:
        _fail(tracker, "fetch-profile", 5)
        assert not tracker.should_attempt("fetch-profile")
        assert tracker.state("fetch-profile") == CooldownState.COOLING
        assert tracker.remaining_cooldown("fetch-profile") == 5_000

        record = tracker.get_record("fetch-profile")
        assert record is not None
        assert record.cooldown_until == clock.now_ms() + 5_000
        assert record.last_failure_at == clock.now_ms()

    def test_cooldown_elapses(self, tracker: FailureTracker, clock: ManualClock) -> None:
        _fail(tracker, "fetch-profile", 5)
        clock.advance(4_999)
        assert not tracker.should_attempt("fetch-profile")
        clock.advance(1)
        assert tracker.should_attempt("fetch-profile")

    def test_expiry_keeps_count(self, tracker: FailureTracker, clock: ManualClock) -> None:
        _fail(tracker, "fetch-profile", 5)
        clock.advance(5_000)
        tracker.record_result("fetch-profile", success=False)
        assert tracker.get_record("fetch-profile").count == 6  # type: ignore[union-attr]
        assert tracker.remaining_cooldown("fetch-profile") == 10_000

    def test_success_resets(self, tracker: FailureTracker) -> None:
        _fail(tracker, "fetch-profile", 7)
        tracker.record_result("fetch-profile", success=True)
        record = tracker.get_record("fetch-profile")
        assert record is not None
        assert record.count == 0
        assert record.cooldown_until is None
        assert tracker.should_attempt("fetch-profile")

    def test_success_below_threshold_resets(self, tracker: FailureTracker) -> None:
        _fail(tracker, "fetch-profile", 3)
        tracker.record_result("fetch-profile", success=True)
        _fail(tracker, "fetch-profile", 4)
        assert tracker.should_attempt("fetch-profile")

    def test_keys_are_independent(self, tracker: FailureTracker) -> None:
        _fail(tracker, "fetch-profile", 5)
        assert not tracker.should_attempt("fetch-profile")
        assert tracker.should_attempt("load-dashboard")

    def test_slow_profile(self, clock: ManualClock) -> None:
        tracker = FailureTracker(profile=SLOW_COOLDOWN, clock=clock)
        _fail(tracker, "send-invite", 6)
        assert tracker.remaining_cooldown("send-invite") == 60_000

    def test_custom_threshold(self, clock: ManualClock) -> None:
        profile = CooldownProfile(failure_threshold=2, base_cooldown_ms=100, max_cooldown_ms=1000)
        tracker = FailureTracker(profile=profile, clock=clock)
        _fail(tracker, "op", 2)
        assert tracker.remaining_cooldown("op") == 100

    def test_reset_and_keys(self, tracker: FailureTracker) -> None:
        _fail(tracker, "a", 1)
        _fail(tracker, "b", 5)
        assert sorted(tracker.keys()) == ["a", "b"]
        assert list(tracker.cooling_keys()) == ["b"]
        tracker.reset("b")
        assert tracker.should_attempt("b")
        assert tracker.keys() == ["a"]

    def test_returned_record_is_a_copy(self, tracker: FailureTracker) -> None:
        _fail(tracker, "op", 1)
        record = tracker.get_record("op")
        assert record is not None
        record.count = 99
        assert tracker.get_record("op").count == 1  # type: ignore[union-attr]

    def test_concurrent_failures_are_not_lost(self, tracker: FailureTracker) -> None:
        def _worker() -> None:
            for _ in range(500):
                tracker.record_result("shared", success=False)

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert tracker.get_record("shared").count == 4000  # type: ignore[union-attr]


class TestTrackerCall:
    @pytest.mark.asyncio
    async def test_success_passes_through(self, tracker: FailureTracker) -> None:
        assert await tracker.call("op", _success) == "ok"

    @pytest.mark.asyncio
    async def test_failure_recorded_once_per_call(self, tracker: FailureTracker) -> None:
        async def _transient() -> None:
            raise ClassifiedError("bad gateway", ErrorKind.SERVER_ERROR, status=502)

        policy = RetryPolicy(max_retries=2, initial_delay_ms=1, jitter=False)
        with pytest.raises(ClassifiedError):
            await tracker.call("op", _transient, policy)
        assert tracker.get_record("op").count == 1  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_rejects_while_cooling(self, tracker: FailureTracker) -> None:
        for _ in range(5):
            with pytest.raises(ClassifiedError):
                await tracker.call("op", _failure)

        with pytest.raises(CooldownActiveError) as exc_info:
            await tracker.call("op", _success)
        assert exc_info.value.operation_key == "op"
        assert exc_info.value.remaining_ms == 5_000

    @pytest.mark.asyncio
    async def test_recovers_after_cooldown(
        self, tracker: FailureTracker, clock: ManualClock
    ) -> None:
        _fail(tracker, "op", 5)
        clock.advance(5_000)
        assert await tracker.call("op", _success) == "ok"
        assert tracker.get_record("op").count == 0  # type: ignore[union-attr]
