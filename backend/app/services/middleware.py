"""Request tracing, rate limiting and response hardening middleware."""
import collections
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("dowee-api.middleware")

SKIP_LOG_PATHS = {"/health"}

WINDOW_SECONDS = 60


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Reuses an incoming X-Request-ID header, or assigns a new uuid4.
    - Adds X-Request-ID and X-Process-Time (ms) to every response.
    - Emits one structured log line per request (except /health).
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path not in SKIP_LOG_PATHS:
            logger.info(
                "request completed",
                extra={
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "http_status": response.status_code,
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                },
            )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # responses are per-requester
        response.headers["Cache-Control"] = "no-store"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding-window rate limiter: ``limit_per_minute`` requests per
    client IP. /health and /metrics are exempt.

    A sweep, at most once a minute, drops the windows of clients with no
    request in the last minute, so the map does not grow with every IP seen.
    """
    EXEMPT_PATHS = {"/health", "/metrics"}

    def __init__(self, app, limit_per_minute: int = 120, clock=time.monotonic):
        super().__init__(app)
        self.limit = limit_per_minute
        self._clock = clock
        # {client_ip: deque of timestamps}
        self._windows: dict = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        stale = [ip for ip, w in self._windows.items() if now - w[-1] > WINDOW_SECONDS]
        for ip in stale:
            del self._windows[ip]
        self._last_sweep = now

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)
        now = self._clock()
        if now - self._last_sweep > WINDOW_SECONDS:
            self._sweep(now)

        ip = request.client.host if request.client else "unknown"
        window = self._windows.get(ip)
        if window is not None:
            while window and now - window[0] > WINDOW_SECONDS:
                window.popleft()
            if len(window) >= self.limit:
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Too many requests. Please slow down."},
                    headers={"Retry-After": str(WINDOW_SECONDS)},
                )

        self._windows.setdefault(ip, collections.deque()).append(now)
        return await call_next(request)
