"""
Fiscalía Orientation Agent — Main Application
==============================================

FastAPI scaffold with:
- Reference tables loaded once via lifespan (fail fast on a broken file)
- Structlog structured logging
- SlowAPI rate limiting
- CORS middleware
- JSON 500 handler
- Health endpoint
"""
import logging
import structlog
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slowapi.errors import RateLimitExceeded

from config import settings
from app.api.api_router import limiter, router as api_router
from app.services.knowledge_loader import load_knowledge
from app.services.session_store import session_store

# =============================================================================
# LOGGING
# =============================================================================

_log_level = logging.DEBUG if settings.debug else logging.INFO

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    logger.info("starting_fiscalia_agent", version=VERSION)

    # KnowledgeLoadError here aborts startup
    kb = load_knowledge()
    logger.info("reference_tables_ready", **kb.counts())

    yield

    logger.info("shutting_down_fiscalia_agent", open_sessions=len(session_store))


# =============================================================================
# FASTAPI APP
# =============================================================================

app = FastAPI(
    title="Fiscalía Orientation Agent",
    description="Routes citizens to the competent prosecutor's office",
    version=VERSION,
    lifespan=lifespan,
)

# Attach rate limiter
app.state.limiter = limiter

# CORS
cors_origins = settings.allowed_origins.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom 429 handler for SlowAPI"""
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please try again later."},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last-resort handler: log and return a JSON 500 without internals"""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# =============================================================================
# ROUTES
# =============================================================================

# API endpoints at /api
app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health():
    """Liveness check"""
    return {
        "status": "healthy",
        "service": "fiscalia-agent",
        "version": VERSION,
    }


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
