from __future__ import annotations

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from campsched.core.config import Settings

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self._settings = settings
        self._days_prefix = f"{settings.api_prefix}/days"

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        # Day records change under concurrent schedulers; a cached copy carries a stale version.
        if request.url.path.startswith(self._days_prefix):
            response.headers.setdefault("Cache-Control", "no-store")
        if self._settings.security_enable_hsts:
            max_age = max(1, self._settings.security_hsts_max_age_seconds)
            response.headers.setdefault("Strict-Transport-Security", f"max-age={max_age}; includeSubDomains")
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject oversized day payloads before they reach the JSON parser."""

    def __init__(self, app, *, max_bytes: int) -> None:
        super().__init__(app)
        self._max_bytes = max(1, max_bytes)

    def _too_large(self, size: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "message": f"Request body too large ({size} bytes); the limit is {self._max_bytes} bytes",
                "details": {"size_bytes": size, "max_bytes": self._max_bytes},
            },
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in BODY_METHODS:
            return await call_next(request)
        raw_length = request.headers.get("content-length")
        if raw_length:
            try:
                size = int(raw_length)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"message": "Invalid Content-Length header", "details": {"content_length": raw_length}},
                )
            if size > self._max_bytes:
                return self._too_large(size)
        return await call_next(request)
