"""geoping: regional HTTP latency checks with phase breakdowns and cached sessions."""
import os
import uuid
import time
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Depends, Body, HTTPException, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, get_environment_info
from auth import get_token_payload, get_token_payload_optional, AuthManager
from cache import build_cache_store
from errors import AllRegionsFailed, CacheUnavailable, SessionValidationError
from fanout import FanOutOrchestrator
from middleware import RequestLogMiddleware, RateLimitMiddleware
from models import CheckRequest, CheckSession, SessionCreated, TokenPayload, TokenRequest
from probe import ProbeClient
from sessions import SessionStore
from timing import latency_formatter, region_formatter, timestamp_formatter, timing_breakdown

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("geoping")

app = FastAPI(
    title="geoping",
    description="Regional HTTP latency checks with phase breakdowns",
    version=VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

cache_store = build_cache_store(settings)
probe_client = ProbeClient(
    settings.PROBE_BASE_URL,
    settings.PROBE_SECRET,
    timeout=settings.PROBE_TIMEOUT,
    regions=settings.PROBE_REGIONS
)
orchestrator = FanOutOrchestrator(
    probe_client,
    settings.PROBE_REGIONS,
    deadline=settings.FANOUT_DEADLINE,
    max_workers=settings.MAX_CONCURRENCY
)
session_store = SessionStore(
    orchestrator,
    cache_store,
    settings.PROBE_REGIONS,
    ttl_seconds=settings.SESSION_TTL_SECONDS
)

def get_session_store() -> SessionStore:
    """Session store dependency; overridden in tests."""
    return session_store

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()

def _error_response(request: Request, status_code: int, error: str, message: str,
                    extra: Optional[Dict[str, Any]] = None) -> JSONResponse:
    content = {
        "error": error,
        "message": message,
        "status_code": status_code,
        "request_id": getattr(request.state, 'request_id', uuid.uuid4().hex),
        "timestamp": _utcnow()
    }
    if extra:
        content.update(extra)
    return JSONResponse(status_code=status_code, content=content)

# Exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for better error reporting."""
    logger.error(f"Unhandled exception in {request.url.path}: {str(exc)}", exc_info=True)
    return _error_response(request, 500, "Internal server error", "An unexpected error occurred")

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return _error_response(
        request, 422, "Validation error", "Invalid request data",
        {"details": jsonable_errors(exc)}
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent format."""
    return _error_response(request, exc.status_code, "HTTP error", exc.detail)

@app.exception_handler(AllRegionsFailed)
async def all_regions_failed_handler(request: Request, exc: AllRegionsFailed):
    return _error_response(
        request, 502, exc.error_code, exc.message,
        {"failures": [failure.model_dump() for failure in exc.failures]}
    )

@app.exception_handler(CacheUnavailable)
async def cache_unavailable_handler(request: Request, exc: CacheUnavailable):
    logger.error(f"Cache unavailable during {request.url.path}: {exc.detail}")
    return _error_response(request, 503, exc.error_code, "Session cache is temporarily unavailable")

@app.exception_handler(SessionValidationError)
async def session_validation_handler(request: Request, exc: SessionValidationError):
    logger.error(f"Session contract violation during {request.url.path}: {exc.detail}")
    return _error_response(request, 500, exc.error_code, "Session data does not match its contract")

def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]

# Add middleware with proper ordering
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLogMiddleware)

# Add rate limiting only in production
if not settings.DEBUG:
    app.add_middleware(RateLimitMiddleware, rate_limit_per_minute=settings.RATE_LIMIT)

@app.on_event("startup")
async def startup_event():
    """Connect the session cache; the service starts degraded if it is unreachable."""
    startup_start_time = time.time()
    env = "kubernetes" if os.environ.get("KUBERNETES_SERVICE_HOST") else "standalone"

    logger.info("Starting geoping service initialization...")
    try:
        await cache_store.initialize()
    except CacheUnavailable as e:
        logger.error(f"Session cache initialization failed: {e.detail}")

    logger.info(
        f"geoping started in {env} environment with regions {settings.PROBE_REGIONS} "
        f"(startup time: {time.time() - startup_start_time:.2f}s)"
    )

@app.on_event("shutdown")
async def shutdown_event():
    """Release probe workers and connections."""
    logger.info("Shutting down geoping service...")
    orchestrator.shutdown()
    probe_client.close()
    cache_store.close()

def render_session(session_id: str, session: CheckSession) -> Dict[str, Any]:
    """Stored session plus per-region timing breakdown and display labels."""
    checks = []
    for check in session.checks:
        entry = check.model_dump(mode="json", by_alias=True)
        entry.update({
            "region_label": region_formatter(check.region),
            "region_location": region_formatter(check.region, "long"),
            "latency_label": latency_formatter(check.latency),
            "time_label": timestamp_formatter(check.time),
            "breakdown": timing_breakdown(check.timing)
        })
        checks.append(entry)

    return {
        "id": session_id,
        "url": session.url,
        "method": session.method.value,
        "time": session.time,
        "time_label": timestamp_formatter(session.time),
        "checks": checks,
        "failures": [failure.model_dump() for failure in session.failures]
    }

# Check endpoints
@app.post("/api/checks", response_model=SessionCreated, status_code=201, tags=["Checks"])
async def create_check(
    payload: CheckRequest = Body(...),
    token: TokenPayload = Depends(get_token_payload),
    store: SessionStore = Depends(get_session_store)
):
    """Probe a URL from every region and cache the result as a new session."""
    logger.info(f"Check of {payload.url} ({payload.method.value}) requested by {token.client_id}")
    session_id = await store.create_session(payload.url, payload.options())
    return SessionCreated(id=session_id, url=payload.url, method=payload.method, regions=store.regions)

@app.get("/api/checks/{session_id}", tags=["Checks"])
async def get_check(
    session_id: str,
    token: Optional[TokenPayload] = Depends(get_token_payload_optional),
    store: SessionStore = Depends(get_session_store)
):
    """Fetch a cached session with its timing breakdown. Reads do not require a token."""
    logger.debug(f"Session {session_id} requested by {token.client_id if token else 'anonymous'}")
    session = await store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found or expired")
    return render_session(session_id, session)

@app.get("/regions", tags=["Checks"])
async def list_regions(store: SessionStore = Depends(get_session_store)):
    """Configured probe regions with display labels."""
    return {
        "regions": [
            {
                "region": region,
                "label": region_formatter(region),
                "location": region_formatter(region, "long")
            }
            for region in store.regions
        ]
    }

# Health and system endpoints
@app.get("/health", tags=["System"])
async def health_check(store: SessionStore = Depends(get_session_store)):
    """Health check endpoint."""
    cache_health = await store.cache.health_check()
    return {
        "status": "healthy" if cache_health.get("status") == "healthy" else "degraded",
        "timestamp": _utcnow(),
        "version": VERSION,
        "cache": cache_health,
        "regions": store.regions,
        "settings": {
            "allow_default_token": settings.ALLOW_DEFAULT_TOKEN,
            "debug": settings.DEBUG,
            "rate_limit": settings.RATE_LIMIT,
            "fanout_deadline": settings.FANOUT_DEADLINE
        }
    }

# Authentication endpoints
@app.post("/generate-token", tags=["Authentication"])
async def generate_token_endpoint(
    payload: TokenRequest = Body(...),
    x_token_secret: str = Header(..., alias="X-Token-Secret")
):
    """Generate a JWT token for an API client."""
    if x_token_secret != settings.TOKEN_SECRET:
        raise HTTPException(status_code=403, detail="Invalid token secret")

    token = AuthManager.generate_token(client_id=payload.client_id, project_id=payload.project_id)
    logger.info(f"Token generated for client {payload.client_id}")
    return {
        "token": token,
        "client_id": payload.client_id.strip(),
        "project_id": (payload.project_id or payload.client_id).strip(),
        "type": "JWT",
        "expires": "never",
        "algorithm": settings.JWT_ALGORITHM,
        "timestamp": _utcnow()
    }

# Development utilities (only in debug mode)
if settings.DEBUG:
    @app.get("/debug/config", tags=["Debug"])
    async def debug_config(token: TokenPayload = Depends(get_token_payload)):
        """Get configuration information (debug only)."""
        return {**get_environment_info(), "timestamp": _utcnow()}

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with service information."""
    return {
        "service": "geoping",
        "version": VERSION,
        "description": "Regional HTTP latency checks with phase breakdowns",
        "status": "operational",
        "timestamp": _utcnow(),
        "endpoints": {
            "health": "/health",
            "docs": "/docs" if settings.DEBUG else "disabled",
            "create_check": "/api/checks",
            "get_check": "/api/checks/{id}",
            "regions": "/regions"
        }
    }

# Application entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
