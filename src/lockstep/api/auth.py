"""API key authentication and role checks for the admin API.

Every request except health checks and docs must carry an ``X-API-Key``
header (or ``api_key`` query parameter) matching one of the configured
keys.  Each key maps to a principal with a list of roles; privileged
routes depend on :func:`require_role`.

When no keys are configured, requests pass through as an anonymous
principal with no roles, so privileged routes answer 403 rather than
being silently opened up.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.responses import Response

logger = logging.getLogger(__name__)

MANAGE_ACCOUNTS = "manage_accounts"

ANONYMOUS: dict[str, Any] = {"user": "anonymous", "roles": []}

# Paths that never require authentication
_PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


def admin_keys(api_key: str | None) -> dict[str, dict[str, Any]]:
    """Build the key table for a single administrator key."""
    if not api_key:
        return {}
    return {api_key: {"user": "admin", "roles": [MANAGE_ACCOUNTS]}}


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Resolve the caller's principal from its API key.

    Args:
        app: ASGI application
        api_keys: Mapping of API key to ``{"user": ..., "roles": [...]}``
    """

    def __init__(self, app: object, api_keys: dict[str, dict[str, Any]] | None = None) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._api_keys = dict(api_keys or {})

    @property
    def enabled(self) -> bool:
        return bool(self._api_keys)

    def _lookup(self, provided: str) -> dict[str, Any] | None:
        # Compare against every key so timing does not reveal which one matched.
        match = None
        for key, principal in self._api_keys.items():
            if secrets.compare_digest(provided.encode(), key.encode()):
                match = principal
        return match

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _PUBLIC_PATHS:
            return await call_next(request)

        if not self.enabled:
            request.state.user = ANONYMOUS
            return await call_next(request)

        provided = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        principal = self._lookup(provided) if provided else None
        if principal is None:
            client = request.client.host if request.client else "unknown"
            logger.warning("Invalid or missing API key from %s", client)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )

        request.state.user = principal
        return await call_next(request)


def require_role(required_role: str) -> Callable[[Request], dict[str, Any]]:
    """FastAPI dependency requiring *required_role* on the caller.

    Example:
        @router.delete("/lockouts/{identifier}")
        async def unlock(user: dict = Depends(require_role(MANAGE_ACCOUNTS))): ...
    """

    def dependency(request: Request) -> dict[str, Any]:
        user = getattr(request.state, "user", None)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
            )
        if required_role not in user.get("roles", []):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{required_role}' required",
            )
        return user

    return dependency
