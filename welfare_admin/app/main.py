"""
FastAPI Application Entry Point.

This is the main application file for the Welfare Admin Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from welfare_admin.app.core.config import settings
from welfare_admin.app.api.v1.router import router as api_v1_router
from welfare_admin.app.core.observability import ObservabilityMiddleware
from welfare_admin.app.core.redis_client import redis_client, ping_redis
from welfare_admin.app.db.session import engine, init_models
from welfare_admin.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    redis_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from welfare_admin.app.models.user import User, UserDevice  # noqa: F401
from welfare_admin.app.models.activity_log import ActivityLog  # noqa: F401
from welfare_admin.app.models.rbac import (  # noqa: F401
    Permission, PermissionDependency, Role, UserRoleAssignment, AssignmentPermissionOverride
)
from welfare_admin.app.models.notification import Notification  # noqa: F401
from welfare_admin.app.models.content import (  # noqa: F401
    Banner, Brochure, NewsEvent, WebsiteSettings, WebsiteCounter
)
from welfare_admin.app.models.program import (  # noqa: F401
    Project, Scheme, Beneficiary, Application, Payment
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Closes the Redis connection pool on shutdown.
    """
    await init_models()
    logger.info(f"{settings.app_name} started ({settings.environment}, OTP mode: {settings.otp_delivery_mode})")
    yield
    await redis_client.aclose()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Admin backend for welfare program management",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(RedisError, redis_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


HEALTH_CHECK_SQL = text("SELECT 1")


async def ping_database() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(HEALTH_CHECK_SQL)
        return True
    except (SQLAlchemyError, OSError):
        logger.exception("Database health check failed")
        return False


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness plus dependency status.

    The database is required (503 when down). Without Redis the service is
    degraded: OTP flows return 502 and token revocation checks fail open.
    """
    db_ok = await ping_database()
    redis_ok = await ping_redis()
    status = "healthy" if db_ok and redis_ok else ("degraded" if db_ok else "unhealthy")
    body = {
        "status": status,
        "app_name": settings.app_name,
        "version": settings.api_version,
        "database": "up" if db_ok else "down",
        "redis": "up" if redis_ok else "down",
    }
    return JSONResponse(body, status_code=200 if db_ok else 503)


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")

# Uploaded files are served by the app only for local disk storage
if settings.storage_backend == "local" and settings.storage_public_base_url.startswith("/"):
    app.mount(
        settings.storage_public_base_url,
        StaticFiles(directory=settings.storage_local_root, check_dir=False),
        name="uploads",
    )


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Welfare Admin Backend API",
        "docs": "/docs",
        "health": "/health",
    }
