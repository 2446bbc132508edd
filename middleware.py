"""Middleware for request/response processing in geoping."""
import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger("geoping.middleware")

SYSTEM_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

class RequestLogMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and logs method, path, status and latency."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        request.state.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        if path in SYSTEM_PATHS or path.startswith("/static"):
            return await call_next(request)

        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request.state.request_id
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}")
            raise
        finally:
            if request.method != "OPTIONS":
                duration_ms = (time.time() - start_time) * 1000
                client_ip = request.client.host if request.client else "unknown"
                logger.info(
                    f"{request.state.request_id} {client_ip} {request.method} {path} "
                    f"-> {status_code} ({duration_ms:.1f}ms)"
                )

class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware."""

    def __init__(self, app, rate_limit_per_minute=120):
        super().__init__(app)
        self.rate_limit = rate_limit_per_minute
        self.clients = {}

    async def dispatch(self, request: Request, call_next):
        """Apply rate limiting to requests."""
        if request.url.path in SYSTEM_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        current_time = time.time()

        self._cleanup(current_time)

        window = self.clients.get(client_ip)
        if window is None:
            self.clients[client_ip] = {"requests": 1, "window_start": current_time}
        elif window["requests"] >= self.rate_limit:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "message": f"Maximum {self.rate_limit} requests per minute allowed",
                    "retry_after": 60 - int(current_time - window["window_start"]),
                    "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(current_time))
                }
            )
        else:
            window["requests"] += 1

        return await call_next(request)

    def _cleanup(self, current_time):
        """Clean up expired rate limit entries."""
        to_delete = [ip for ip, data in self.clients.items()
                     if current_time - data["window_start"] >= 60]
        for ip in to_delete:
            del self.clients[ip]
