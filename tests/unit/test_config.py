"""Unit tests for environment-driven settings."""

from __future__ import annotations

import pytest

from lockstep.config import Settings
from lockstep.core.clock import ManualClock, SystemClock
from lockstep.patterns.circuit_breaker import FAST_COOLDOWN, SLOW_COOLDOWN


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "LOCKSTEP_LOG_LEVEL",
            "LOCKSTEP_LOG_JSON",
            "LOCKSTEP_COOLDOWN_PROFILE",
            "LOCKSTEP_ADMIN_API_KEY",
            "LOCKSTEP_HOST",
            "LOCKSTEP_PORT",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()
        assert settings.log_level == "INFO"
        assert settings.log_json is True
        assert settings.profile is FAST_COOLDOWN
        assert settings.admin_api_key is None
        assert settings.port == 8000

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOCKSTEP_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOCKSTEP_LOG_JSON", "false")
        monkeypatch.setenv("LOCKSTEP_COOLDOWN_PROFILE", "SLOW")
        monkeypatch.setenv("LOCKSTEP_ADMIN_API_KEY", "s3cret")
        monkeypatch.setenv("LOCKSTEP_PORT", "9090")

        settings = Settings.from_env()
        assert settings.log_level == "DEBUG"
        assert settings.log_json is False
        assert settings.profile is SLOW_COOLDOWN
        assert settings.admin_api_key == "s3cret"
        assert settings.port == 9090

    def test_unknown_profile_rejected(self) -> None:
        with pytest.raises(ValueError, match="cooldown profile"):
            Settings(cooldown_profile="medium")


class TestClocks:
    def test_manual_clock(self) -> None:
        clock = ManualClock(start_ms=1_000)
        clock.advance(250)
        assert clock.now_ms() == 1_250
        clock.set(5)
        assert clock.now_ms() == 5

    def test_manual_clock_cannot_rewind(self) -> None:
        with pytest.raises(ValueError):
            ManualClock().advance(-1)

    def test_system_clock_is_epoch_ms(self) -> None:
        now = SystemClock().now_ms()
        assert now > 1_600_000_000_000
