import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tasklist.core.config import Settings, get_settings
from tasklist.core.errors import register_exception_handlers
from tasklist.core.logging import RequestContextMiddleware, RequestMetrics, configure_logging
from tasklist.core.rate_limit import RateLimiter
from tasklist.database import (
    build_engine,
    build_session_factory,
    create_db_and_tables,
    ping,
)
from tasklist.routers import auth, tasks
from tasklist.services.token_service import TokenService
from tasklist.services.token_store import RevocationRegistry
from tasklist.services.user_service import UserService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if settings.create_tables_on_startup:
        await create_db_and_tables(app.state.engine)
    async with app.state.session_factory() as session:
        await UserService.ensure_demo_user(session, settings)
    logger.info("Task list API started (%s)", settings.environment)
    yield
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None, token_service: TokenService | None = None) -> FastAPI:
    """
    Build the application with its own engine, revocation registry and limiters.

    Settings are validated here, so a missing secret in strict mode stops
    startup.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Task List API",
        description="Multi-tenant task list API with JWT access/refresh tokens",
        swagger_ui_parameters={"displayRequestDuration": True},
        version="1.0.0",
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.engine = build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.token_service = token_service or TokenService(settings, RevocationRegistry())
    app.state.rate_limiters = {
        "login": RateLimiter(
            settings.login_rate_limit,
            settings.rate_limit_window_seconds,
            "LOGIN_RATE_LIMIT",
        ),
        "refresh": RateLimiter(
            settings.refresh_rate_limit,
            settings.rate_limit_window_seconds,
            "REFRESH_RATE_LIMIT",
        ),
    }
    app.state.metrics = RequestMetrics()

    app.add_middleware(RequestContextMiddleware, metrics=app.state.metrics)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-Id"],
        expose_headers=["X-Request-Id"],
        max_age=600,
    )
    register_exception_handlers(app)

    # Include routers
    app.include_router(auth.router)
    app.include_router(tasks.router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to Task List API",
            "docs": "/docs",
            "version": "1.0.0",
        }

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "ok",
            "uptimeSeconds": round(time.monotonic() - request.app.state.started_at, 3),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/ready")
    async def readiness_check(request: Request):
        try:
            await ping(request.app.state.engine)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Readiness check failed: %s", e)
            return JSONResponse(
                status_code=503,
                content={"status": "not-ready", "error": "Database unavailable"},
            )
        return {"status": "ready"}

    @app.get("/metrics")
    async def metrics(request: Request):
        return {"status": "ok", "metrics": request.app.state.metrics.snapshot()}

    return app
