"""
Workspace Platform API - Main Application.

- JWT auth with refresh tokens
- Platform roles (Admin/User) and workspace roles (Owner/Author/Member)
- Activity log with cursor pagination
- Request ids, structured logging and Prometheus metrics
- Fail-fast on dangerous defaults in production
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.routers.health import router as health_router
from app.routers.auth import router as auth_router
from app.routers.users import router as users_router
from app.routers.workspaces import router as workspaces_router
from app.routers.admin_workspaces import router as admin_workspaces_router
from app.routers.activities import router as activities_router
from app.routers.environment import router as environment_router
from app.routers.sql_editor import router as sql_editor_router
from app.routers.procedure_templates import router as procedure_templates_router
from app.core.logging import setup_logging
from app.core.errors import setup_exception_handlers
from app.core.metrics import MetricsCollector
from app.core.request_context import RequestContextMiddleware
from app.core.config import check_production_safety, settings
from app.db.seed import seed
from app.db.session import SessionLocal

setup_logging()

logger = structlog.get_logger(__name__)

# =============================================================================
# Production Safety Check (fail fast if misconfigured)
# =============================================================================
check_production_safety()


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()
    logger.info("app.started", env=settings.ENV, version=settings.APP_VERSION)
    yield


def create_app(metrics: MetricsCollector | None = None) -> FastAPI:
    """Build the application with its own metrics collector."""
    application = FastAPI(
        title="Workspace Platform",
        description="Multi-tenant workspace administration API",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    application.state.metrics = metrics or MetricsCollector()

    # =========================================================================
    # Middleware (order matters: first added = last executed)
    # =========================================================================
    application.add_middleware(RequestContextMiddleware, metrics=application.state.metrics)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    setup_exception_handlers(application)

    # =========================================================================
    # Routes
    # =========================================================================
    application.include_router(health_router)
    application.include_router(auth_router)
    application.include_router(users_router)
    application.include_router(workspaces_router)
    application.include_router(admin_workspaces_router)
    application.include_router(activities_router)
    application.include_router(environment_router)
    application.include_router(sql_editor_router)
    application.include_router(procedure_templates_router)

    @application.get("/", tags=["root"])
    def root():
        """API root - returns version info."""
        return {
            "name": "workspace-platform",
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/healthz",
        }

    return application


app = create_app()
