"""API route definitions, separated from the app factory for testability."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from lockstep import __version__
from lockstep.api.auth import MANAGE_ACCOUNTS, require_role
from lockstep.api.schemas import (
    CooldownResponse,
    HealthResponse,
    LockoutResponse,
    UnlockResponse,
)
from lockstep.core.engine import ThrottleEngine
from lockstep.observability.logging import LogContext

logger = logging.getLogger(__name__)

router = APIRouter()

_start_time: float = time.monotonic()


def get_engine(request: Request) -> ThrottleEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("Engine not configured")
    return engine


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, tags=["ops"])
async def health(request: Request) -> HealthResponse:
    return HealthResponse(
        version=__version__,
        uptime_seconds=round(time.monotonic() - _start_time, 2),
        cooldown_profile=request.app.state.settings.cooldown_profile,
    )


# ------------------------------------------------------------------
# Account lockouts (administrative)
# ------------------------------------------------------------------


@router.get("/lockouts", response_model=list[LockoutResponse], tags=["lockouts"])
async def list_lockouts(
    include_expired: bool = False,
    engine: ThrottleEngine = Depends(get_engine),
    _user: dict[str, Any] = Depends(require_role(MANAGE_ACCOUNTS)),
) -> list[LockoutResponse]:
    accounts = engine.lockouts.list_locked_accounts(include_expired=include_expired)
    return [LockoutResponse.from_status(status) for status in accounts]


@router.get("/lockouts/{identifier}", response_model=LockoutResponse, tags=["lockouts"])
async def get_lockout(
    identifier: str,
    engine: ThrottleEngine = Depends(get_engine),
    _user: dict[str, Any] = Depends(require_role(MANAGE_ACCOUNTS)),
) -> LockoutResponse:
    return LockoutResponse.from_status(engine.lockouts.get_lockout_info(identifier))


@router.delete("/lockouts/{identifier}", response_model=UnlockResponse, tags=["lockouts"])
async def unlock_account(
    identifier: str,
    engine: ThrottleEngine = Depends(get_engine),
    user: dict[str, Any] = Depends(require_role(MANAGE_ACCOUNTS)),
) -> UnlockResponse:
    """Clear an account's lockout regardless of its level."""
    with LogContext(actor=user.get("user")):
        unlocked = engine.lockouts.admin_unlock(identifier, actor=user.get("user"))
    if not unlocked:
        raise HTTPException(status_code=404, detail="No lockout record for this account")
    return UnlockResponse(
        identifier=identifier,
        unlocked=True,
        message=f"Account {identifier} has been unlocked",
    )


# ------------------------------------------------------------------
# Operation cooldowns
# ------------------------------------------------------------------


@router.get("/cooldowns", response_model=list[CooldownResponse], tags=["cooldowns"])
async def list_cooldowns(
    engine: ThrottleEngine = Depends(get_engine),
    _user: dict[str, Any] = Depends(require_role(MANAGE_ACCOUNTS)),
) -> list[CooldownResponse]:
    responses = []
    for key, remaining in sorted(engine.tracker.cooling_keys().items()):
        record = engine.tracker.get_record(key)
        responses.append(
            CooldownResponse(
                operation_key=key,
                remaining_ms=remaining,
                failure_count=record.count if record else 0,
            )
        )
    return responses
