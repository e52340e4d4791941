"""API route modules."""

from routes.classes_routes import router as classes_router
from routes.health_routes import router as health_router
from routes.redemptions_routes import router as redemptions_router

__all__ = [
    "classes_router",
    "health_router",
    "redemptions_router",
]
