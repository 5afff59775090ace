"""
LawBridge API
=============

Case management service with a live update channel.

Routers:
- /api/auth           - register, login, me, logout, change-password
- /api/users          - admin user management and staff directory
- /api/cases          - cases, sharing, notes, history, reports
- /api/tasks          - tasks and task analytics
- /api/hearings       - hearing schedule and notes
- /api/notifications  - per-user notifications
- /ws                 - live channel (rooms: user_<id>, case_<id>, hearing_<id>)
- GET /health         - service health

Run with:
    uvicorn lawbridge.api:app --host 0.0.0.0 --port 8000
"""

import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .db.session import get_db_session, init_db
from .errors import LawBridgeError
from .middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from .realtime import ConnectionRegistry, Dispatcher, EventOutbox
from .realtime.channel import router as channel_router
from .token_blacklist import get_blacklist_stats, remove_expired_entries
from . import api_auth, api_cases, api_hearings, api_notifications, api_tasks, api_users

settings = get_settings()

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.service_name,
    description="Case management for advocates, mediators and their clients",
    version=settings.service_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    SecurityHeadersMiddleware,
    enforce_https=settings.enforce_https,
    hsts_max_age=settings.hsts_max_age,
)
if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware, limit=settings.rate_limit_per_user)
    logger.info(f"Rate limiting enabled: {settings.rate_limit_per_user}/min per user")

# Live channel plumbing shared by the routers and the /ws endpoint
app.state.registry = ConnectionRegistry()
app.state.outbox = EventOutbox()
app.state.dispatcher = Dispatcher(
    app.state.outbox, app.state.registry, poll_seconds=settings.outbox_poll_seconds
)

app.include_router(api_auth.router)
app.include_router(api_users.router)
app.include_router(api_cases.router)
app.include_router(api_tasks.router)
app.include_router(api_hearings.router)
app.include_router(api_notifications.router)
app.include_router(channel_router)


# =============================================================================
# Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    current = get_settings()
    logger.info(f"Starting {current.service_name} v{current.service_version} ({current.environment})")
    init_db()

    with get_db_session() as db:
        removed = remove_expired_entries(db)
    if removed:
        logger.info(f"Removed {removed} expired revoked-token row(s)")

    if current.outbox_autostart:
        app.state.dispatcher.start()
    else:
        logger.info("Event dispatcher autostart disabled")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    await app.state.dispatcher.stop()
    logger.info("Shutdown complete")


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    current = get_settings()
    dispatcher: Dispatcher = app.state.dispatcher
    return {
        "status": "healthy",
        "service": current.service_name,
        "version": current.service_version,
        "timestamp": datetime.utcnow().isoformat(),
        "live": {
            **app.state.registry.stats(),
            "dispatcher_running": dispatcher.running,
            "queued": len(app.state.outbox),
            "outbox": dict(app.state.outbox.stats),
            "dispatch": dict(dispatcher.stats),
        },
        "token_blacklist": get_blacklist_stats(),
    }


# =============================================================================
# Error Handlers
# =============================================================================

def _error_code_for_status(status_code: int) -> str:
    return {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "validation_error",
        429: "rate_limited",
        500: "internal_error",
    }.get(status_code, "error")


def _error_response(status_code: int, code: str, message: str, details: Any = None, headers=None) -> JSONResponse:
    content: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error": {"code": code, "message": message, "details": details},
    }
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(LawBridgeError)
async def lawbridge_error_handler(request: Request, exc: LawBridgeError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def api_http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str) and detail:
        message = " ".join(detail.split())[:300]
        details = None
    else:
        message = "Request failed"
        details = detail
    return _error_response(
        exc.status_code, _error_code_for_status(exc.status_code), message, details,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return structured validation errors without echoing inputs."""
    sanitized_errors = [
        {"loc": err.get("loc"), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return _error_response(422, "validation_error", "Invalid request data", {"errors": sanitized_errors})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return valid JSON"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc.__class__.__name__}", exc_info=exc)
    details = {"exception": exc.__class__.__name__} if get_settings().is_development else None
    return _error_response(500, "internal_error", "Internal server error", details)
