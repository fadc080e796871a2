"""FastAPI application factory.

Builds the administrative API around a :class:`ThrottleEngine`: listing
and unlocking locked accounts, and inspecting operation cooldowns.
Applications that embed the engine in their own sign-in routes can reuse
:func:`install_error_handlers` to turn lockouts and cooldowns into HTTP
responses.
"""

from __future__ import annotations

import math

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from lockstep import __version__
from lockstep.api import routes
from lockstep.api.auth import APIKeyMiddleware, admin_keys
from lockstep.config import Settings
from lockstep.core.engine import ThrottleEngine
from lockstep.core.errors import AccountLockedError, CooldownActiveError
from lockstep.observability.logging import configure_logging


def _throttled(status_code: int, exc: AccountLockedError | CooldownActiveError) -> JSONResponse:
    retry_after = max(1, math.ceil(exc.remaining_ms / 1000))
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "retry_after_seconds": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Map engine errors onto 423 Locked and 503 Service Unavailable."""

    @app.exception_handler(AccountLockedError)
    async def _account_locked(request: Request, exc: AccountLockedError) -> JSONResponse:
        return _throttled(status.HTTP_423_LOCKED, exc)

    @app.exception_handler(CooldownActiveError)
    async def _cooldown_active(request: Request, exc: CooldownActiveError) -> JSONResponse:
        return _throttled(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


def create_app(
    settings: Settings | None = None,
    engine: ThrottleEngine | None = None,
) -> FastAPI:
    """Build the configured FastAPI instance."""
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="LockStep Throttling Admin API",
        description=(
            "Administrative view of the LockStep throttling engine: locked "
            "accounts, manual unlocks, and per-operation cooldowns."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.engine = engine or ThrottleEngine.from_settings(settings)

    app.add_middleware(APIKeyMiddleware, api_keys=admin_keys(settings.admin_api_key))
    install_error_handlers(app)
    app.include_router(routes.router)

    return app


def main() -> None:
    """Entry-point for ``lockstep`` CLI."""
    settings = Settings.from_env()
    configure_logging(log_level=settings.log_level, json_format=settings.log_json)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
