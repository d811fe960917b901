from __future__ import annotations

import logging

from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.access import Deny, RoutePolicy
from app.core.config import Settings
from app.core.exceptions import AppError, ForbiddenError, UnauthenticatedError
from app.core.security import decode_token

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if self._settings.security_enable_hsts:
            max_age = max(1, self._settings.security_hsts_max_age_seconds)
            response.headers.setdefault("Strict-Transport-Security", f"max-age={max_age}; includeSubDomains")
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max(1, max_bytes)

    async def dispatch(self, request: Request, call_next) -> Response:
        raw_length = request.headers.get("content-length")
        if raw_length:
            try:
                value = int(raw_length)
            except ValueError:
                value = 0
            if value > self._max_bytes:
                return JSONResponse(
                    status_code=413,
                    content={
                        "error": (
                            f"Request body too large ({value} bytes). "
                            f"Maximum allowed is {self._max_bytes} bytes."
                        )
                    },
                )
        return await call_next(request)


def _session_claims(request: Request) -> dict | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    try:
        claims = decode_token(token.strip())
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    return claims


def _denial_response(error: AppError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


class AccessGateMiddleware(BaseHTTPMiddleware):
    """Rejects requests before routing when the route policy denies them."""

    def __init__(self, app, *, policy: RoutePolicy) -> None:
        super().__init__(app)
        self._policy = policy

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or not self._policy.is_gated(path):
            return await call_next(request)

        claims = _session_claims(request)
        role = claims.get("role") if claims else None
        decision = self._policy.resolve_route_access(
            role,
            request.method,
            path,
            authenticated=claims is not None,
        )
        if isinstance(decision, Deny):
            if decision.kind == "unauthenticated":
                logger.warning("Unauthenticated access attempt to %s %s", request.method, path)
                return _denial_response(UnauthenticatedError())
            logger.warning(
                "Access denied to %s %s for role %s (rule %s)",
                request.method,
                path,
                role,
                decision.rule,
            )
            return _denial_response(ForbiddenError(rule=decision.rule))

        logger.debug("Access granted to %s for %s %s", role, request.method, path)
        return await call_next(request)
