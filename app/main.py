"""FastAPI application factory and entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import close_db
from app.exceptions import create_exception_handlers
from app.services.document_service import DocumentService, default_documents
from app.services.email_service import close_email_service
from app.services.settings_service import get_settings_service
from app.services.storage_backends import StorageConfig
from app.services.storage_service import StorageService

log_level = logging.DEBUG if settings.is_development else getattr(logging, settings.app_log_level)
logging.basicConfig(
    level=log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    force=True,
)
logger = logging.getLogger(__name__)
logger.info(f"Logging configured at level: {logging.getLevelName(log_level)}")


def init_services(app: FastAPI, storage_config: StorageConfig | None = None) -> None:
    """Build the storage and document services once and attach them to the app.

    The storage decision is frozen here; request handlers only ever see
    this snapshot through ``app.state``.
    """
    storage_config = storage_config or StorageConfig.from_settings(settings)
    storage_service = StorageService(storage_config)
    storage_service.ensure_local_directories()

    app.state.storage_config = storage_config
    app.state.storage_service = storage_service
    app.state.document_service = DocumentService(
        storage_service,
        get_settings_service(),
        default_documents(settings),
    )


def create_app(storage_config: StorageConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
        yield
        logger.info(f"Shutting down {settings.app_name}")
        await close_email_service()
        await close_db()

    app = FastAPI(
        title=settings.app_name,
        description="Event management backend: settings, uploads, documents and email",
        version="1.0.0",
        docs_url="/api/docs" if settings.app_debug else None,
        redoc_url="/api/redoc" if settings.app_debug else None,
        openapi_url="/api/openapi.json" if settings.app_debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [settings.app_base_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_class, handler in create_exception_handlers().items():
        app.add_exception_handler(exc_class, handler)

    init_services(app, storage_config)

    # Local uploads are served as static files; cloud assets carry their own URLs
    if not app.state.storage_config.use_cloud:
        upload_root = app.state.storage_config.upload_root
        app.mount("/uploads", StaticFiles(directory=str(upload_root)), name="uploads")

    register_routers(app)

    return app


def register_routers(app: FastAPI):
    """Register the API routers."""
    from app.api.v1 import api_router

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "env": settings.app_env,
            "storage": app.state.storage_config.backend.value,
        }


app = create_app()


def main():
    """Entry point for running the application."""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.app_log_level.lower(),
    )


if __name__ == "__main__":
    main()
