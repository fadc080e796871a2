"""Pydantic schemas for request / response serialisation."""

from __future__ import annotations

from pydantic import BaseModel, Field

from lockstep.auth.lockout import LockoutStatus  # noqa: TC001
from lockstep.core.errors import format_cooldown


class LockoutResponse(BaseModel):
    identifier: str
    locked: bool
    lockout_level: int = Field(..., ge=0, le=4)
    lockout_until: int | None = None
    remaining_ms: int = Field(default=0, ge=0)
    remaining: str
    recent_attempts: int = Field(default=0, ge=0)
    attempts_remaining: int = Field(default=0, ge=0)
    first_attempt_at: int | None = None

    @classmethod
    def from_status(cls, status: LockoutStatus) -> LockoutResponse:
        return cls(
            identifier=status.identifier,
            locked=status.locked,
            lockout_level=status.lockout_level,
            lockout_until=status.lockout_until,
            remaining_ms=status.remaining_ms,
            remaining=format_cooldown(status.remaining_ms),
            recent_attempts=status.recent_attempts,
            attempts_remaining=status.attempts_remaining,
            first_attempt_at=status.first_attempt_at,
        )


class UnlockResponse(BaseModel):
    identifier: str
    unlocked: bool
    message: str


class CooldownResponse(BaseModel):
    operation_key: str
    remaining_ms: int = Field(..., ge=0)
    failure_count: int = Field(..., ge=0)


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    uptime_seconds: float
    cooldown_profile: str
