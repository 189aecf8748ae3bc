"""API routers."""

from app.routers.interventions import router as interventions_router
from app.routers.notifications import router as notifications_router

__all__ = ["interventions_router", "notifications_router"]
