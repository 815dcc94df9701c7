"""FastAPI application entry point"""
import asyncio
from contextlib import asynccontextmanager, suppress
from functools import partial

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from snapfeed import __version__
from snapfeed.api import auth, feed, files, health, posts, tags, users
from snapfeed.config import settings
from snapfeed.database import Base, SessionLocal, engine
from snapfeed.errors import AppError, Conflict, InternalError
from snapfeed.middleware.rate_limit import limiter
from snapfeed.seed import ensure_default_roles
from snapfeed.utils.blob_store import LocalBlobStore
from snapfeed.utils.jwt_utils import TokenConfig, TokenIssuer, TokenVerifier
from snapfeed.utils.logger import logger, setup_logging
from snapfeed.utils.quota import QuotaGrants, run_replenishment_sweep
from snapfeed.utils.scheduler import run_quota_scheduler
from snapfeed.utils.sessions import build_session_registry

# Setup logging
setup_logging(settings.LOG_LEVEL)

_INTERNAL_ERROR_MESSAGE = "An unexpected error occurred. Please contact support."


def _seed_roles() -> None:
    db = SessionLocal()
    try:
        ensure_default_roles(db)
    except SQLAlchemyError:
        logger.error("Could not seed default roles; is the database migrated?", exc_info=True)
    finally:
        db.close()


def _start_quota_scheduler() -> asyncio.Task:
    sweep = partial(
        run_replenishment_sweep,
        SessionLocal,
        QuotaGrants.from_settings(settings),
        page_size=settings.QUOTA_SWEEP_PAGE_SIZE,
        batch_size=settings.QUOTA_SWEEP_BATCH_SIZE,
    )
    return asyncio.create_task(run_quota_scheduler(sweep), name="quota-replenishment")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("SnapFeed backend starting up", extra={
        "version": __version__,
        "environment": settings.APP_ENV,
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED
    })

    if settings.DATABASE_AUTO_CREATE:
        Base.metadata.create_all(bind=engine)
    _seed_roles()

    scheduler = _start_quota_scheduler() if settings.QUOTA_SWEEP_ENABLED else None

    yield

    # Shutdown
    if scheduler is not None:
        scheduler.cancel()
        with suppress(asyncio.CancelledError):
            await scheduler
    logger.info("SnapFeed backend shutting down")


# Create FastAPI app
app = FastAPI(
    title="SnapFeed",
    description="Social feed backend: token sessions, role gates and daily action quotas",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ===== Application services =====

app.state.token_issuer = TokenIssuer(TokenConfig.from_settings(settings))
app.state.token_verifier = TokenVerifier(TokenConfig.from_settings(settings))
app.state.session_registry = build_session_registry(
    settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT
)
app.state.blob_store = LocalBlobStore.from_settings(settings)
app.state.limiter = limiter

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from snapfeed.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="snapfeed_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting
if settings.RATE_LIMIT_ENABLED:
    from slowapi.middleware import SlowAPIMiddleware
    app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "path": request.url.path,
            "method": request.method,
            "user_id": getattr(request.state, "user_id", None)
        }
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )

# ===== Route Setup =====

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(tags.router)
app.include_router(feed.router)
app.include_router(files.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "SnapFeed",
        "version": __version__,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Map the error taxonomy onto status codes and the error envelope"""
    message = exc.message
    if isinstance(exc, InternalError):
        logger.error(
            f"Internal error: {exc.message}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "user_id": getattr(request.state, "user_id", None)
            },
            exc_info=exc
        )
        message = _INTERNAL_ERROR_MESSAGE

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": message}
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Unique-key races surface as conflicts"""
    logger.info(
        "Integrity violation",
        extra={"path": request.url.path, "method": request.method, "error": str(exc.orig)}
    )
    return JSONResponse(
        status_code=Conflict.status_code,
        content={"error": Conflict.code, "message": Conflict.default_message}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": _INTERNAL_ERROR_MESSAGE
        }
    )
