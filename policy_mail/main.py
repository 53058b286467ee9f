"""
FastAPI application entry point for Policy Mail.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from policy_mail.api.email_workflow import (
    EmailWorkflowConfig,
    EmailWorkflowManager,
    build_workflow_manager,
    email_router,
    get_email_config,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown events.
    """
    settings: EmailWorkflowConfig = app.state.settings
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"Debug mode: {settings.debug}")

    # Sweep states left over from a previous run
    app.state.workflow_manager.cleanup_old_states()

    yield

    logger.info("Shutting down application")


def configure_cors(app: FastAPI, settings: EmailWorkflowConfig) -> None:
    """
    Configure CORS settings for development.

    Args:
        app: FastAPI application instance
        settings: Application settings
    """
    if settings.debug:
        cors_origins = settings.cors_origins.split(",")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )


def configure_routes(app: FastAPI, settings: EmailWorkflowConfig) -> None:
    """
    Register all API routes and endpoints.

    Args:
        app: FastAPI application instance
        settings: Application settings
    """

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": "0.1.0",
            "cache": app.state.workflow_manager.cache.get_stats(),
        }

    app.include_router(email_router)


def create_app(
    settings: EmailWorkflowConfig | None = None,
    manager: EmailWorkflowManager | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings (default: environment configuration)
        manager: Pre-built workflow manager, mainly for tests

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_email_config()

    app = FastAPI(
        title=settings.app_name,
        description="Guided composition of policy violation emails",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.workflow_manager = manager or build_workflow_manager(settings)

    configure_cors(app, settings)
    configure_routes(app, settings)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_email_config()
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=7001,
        log_level="info" if settings.debug else "warning",
    )
