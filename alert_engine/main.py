"""Main FastAPI application."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from alert_engine import __version__
from alert_engine.api.v1.router import api_router
from alert_engine.core.config import get_settings
from alert_engine.core.database import close_db, init_db
from alert_engine.core.exceptions import add_exception_handlers
from alert_engine.core.logging_config import configure_logging
from alert_engine.core.middleware import add_middleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting up application")

    await init_db()

    scheduler_started = False
    if settings.SCHEDULER_ENABLED:
        from alert_engine.cron.alert_scheduler import start_scheduler

        start_scheduler()
        scheduler_started = True

    yield

    logger.info("Shutting down application")
    if scheduler_started:
        from alert_engine.cron.alert_scheduler import stop_scheduler

        stop_scheduler()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    # Tests manage the schema and never start the scheduler
    lifespan_context = None if settings.TESTING else lifespan

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Alert rule evaluation and notification API",
        version=__version__,
        openapi_url=f"{settings.API_V1_STR}/openapi.json" if settings.DEBUG else None,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan_context,
        redirect_slashes=False,
    )

    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.BACKEND_CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    add_middleware(app)

    if settings.ALLOWED_HOSTS:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.ALLOWED_HOSTS,
        )

    add_exception_handlers(app)

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": settings.PROJECT_NAME, "version": __version__, "status": "healthy"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint with database connectivity test."""
        from sqlalchemy import text

        from alert_engine.core.database import get_session_factory

        try:
            async with get_session_factory()() as db:
                await db.execute(text("SELECT 1"))

            return {
                "status": "healthy",
                "database": "connected",
            }
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "database": "error",
                "error": str(e),
            }

    return app


# Create the app instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "alert_engine.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
    )
