"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from modconsole.core.config import settings
from modconsole.core.middleware import setup_middleware
from modconsole.core.rate_limiter import limiter
from modconsole.core.exceptions import ConsoleError, CooldownActiveError

from modconsole.api.auth import router as auth_router
from modconsole.api.commands import router as commands_router
from modconsole.api.approvals import router as approvals_router
from modconsole.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("modconsole")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting moderation console API")
    from modconsole.db.base import Base
    from modconsole.db.session import engine
    import modconsole.models  # noqa: F401  registers all tables

    Base.metadata.create_all(bind=engine)

    if settings.EVENT_FANOUT_ENABLED:
        from modconsole.services.cache_service import cache_service
        if cache_service.health_check():
            logger.info("Redis connected")
        else:
            logger.warning("Redis not available, security event fan-out is off")

    yield

    logger.info("Shutting down moderation console API")


app = FastAPI(
    title="Moderation Console API",
    description="Command execution, approvals and tamper-evident audit",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ConsoleError)
async def console_exception_handler(request: Request, exc: ConsoleError):
    content = {"detail": exc.message, "code": exc.code}
    headers = None
    if isinstance(exc, CooldownActiveError):
        content["remainingSeconds"] = exc.remaining_seconds
        headers = {"Retry-After": str(exc.remaining_seconds)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(commands_router, prefix="/api")
app.include_router(approvals_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
