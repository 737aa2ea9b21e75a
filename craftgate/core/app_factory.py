"""Application factory for the craftgate API."""

from __future__ import annotations

from fastapi import FastAPI

from craftgate import __version__
from craftgate.api.routes import health_router, images_router
from craftgate.core.config import settings
from craftgate.core.exception_handlers import setup_exception_handlers
from craftgate.core.logging import configure_logging
from craftgate.core.middleware import request_id_middleware
from craftgate.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Craftgate",
        description=(
            "Throttling gate for AI furniture image generation in the custom "
            "furniture marketplace. Each user (or anonymous client IP) may "
            "generate a small number of images per fixed window; callers over "
            "quota receive 429 with Retry-After."
        ),
        version=__version__,
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(images_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
