from __future__ import annotations

from craftgate.api.routes.health import router as health_router
from craftgate.api.routes.images import router as images_router

__all__ = ["health_router", "images_router"]
