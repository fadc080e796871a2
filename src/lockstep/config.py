"""Runtime configuration read from ``LOCKSTEP_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from lockstep.patterns.circuit_breaker import COOLDOWN_PROFILES, CooldownProfile


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Process-wide settings.

    ``cooldown_profile`` names one of the presets in
    :data:`~lockstep.patterns.circuit_breaker.COOLDOWN_PROFILES`.
    """

    log_level: str = "INFO"
    log_json: bool = True
    cooldown_profile: str = "fast"
    admin_api_key: str | None = None
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self) -> None:
        if self.cooldown_profile not in COOLDOWN_PROFILES:
            raise ValueError(
                f"Unknown cooldown profile '{self.cooldown_profile}' "
                f"(expected one of: {', '.join(sorted(COOLDOWN_PROFILES))})"
            )

    @property
    def profile(self) -> CooldownProfile:
        return COOLDOWN_PROFILES[self.cooldown_profile]

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            log_level=os.environ.get("LOCKSTEP_LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOCKSTEP_LOG_JSON", True),
            cooldown_profile=os.environ.get("LOCKSTEP_COOLDOWN_PROFILE", "fast").lower(),
            admin_api_key=os.environ.get("LOCKSTEP_ADMIN_API_KEY") or None,
            host=os.environ.get("LOCKSTEP_HOST", "127.0.0.1"),
            port=int(os.environ.get("LOCKSTEP_PORT", "8000")),
        )
