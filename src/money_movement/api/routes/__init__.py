"""API routes."""

from money_movement.api.routes.health import router as health_router
from money_movement.api.routes.money_movement import router as money_movement_router

__all__ = ["money_movement_router", "health_router"]
