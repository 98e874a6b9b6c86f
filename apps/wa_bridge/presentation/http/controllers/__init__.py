"""HTTP Controllers."""

from apps.wa_bridge.presentation.http.controllers.health import router as health_router
from apps.wa_bridge.presentation.http.controllers.message import router as message_router

__all__ = ["health_router", "message_router"]
