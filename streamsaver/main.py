from typing import Optional

from fastapi import FastAPI
from streamsaver.api.routers import files, streams, uploads
from streamsaver.core.config import Settings, settings as default_settings
from streamsaver.core.errors import register_error_handlers
from streamsaver.services.cleanup_service import setup_cleanup_tasks
from streamsaver.services.container import build_services


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build an application with its own session state rooted at settings.UPLOAD_DIR.
    """
    settings = settings or default_settings
    settings.ensure_directories()

    # Create FastAPI application
    app = FastAPI(title=settings.PROJECT_NAME)
    app.state.services = build_services(settings)

    # Include routers
    app.include_router(uploads.router, prefix=settings.API_PREFIX)
    app.include_router(streams.router, prefix=settings.API_PREFIX)
    app.include_router(files.router, prefix=settings.API_PREFIX)
    register_error_handlers(app)

    # Set up background cleanup tasks
    setup_cleanup_tasks(app)
    return app
