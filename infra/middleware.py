# infra/middleware.py
"""
Response headers and request timing for the admin API
"""

import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
QUIET_PATHS = ("/healthz", "/uploads/")

API_CSP = "default-src 'none'; frame-ancestors 'none';"
# Uploaded media is embedded by the dashboard
MEDIA_CSP = "default-src 'none'; img-src 'self'; media-src 'self'; frame-ancestors 'none';"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers; HSTS only when served over https"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        is_media = request.url.path.startswith("/uploads/")
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = MEDIA_CSP if is_media else API_CSP
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Server-Timing header; slow requests logged as warnings"""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.error(f"{request.method} {path} failed after {elapsed:.1f}ms: {e}")
            raise

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["Server-Timing"] = f"app;dur={elapsed:.1f}"

        if elapsed > SLOW_REQUEST_MS:
            logger.warning(f"Slow request: {request.method} {path} {response.status_code} took {elapsed:.1f}ms")
        elif not path.startswith(QUIET_PATHS):
            logger.info(f"{request.method} {path} {response.status_code} {elapsed:.1f}ms")

        return response
