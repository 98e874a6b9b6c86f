"""Gateway Event Presentation."""

from apps.wa_bridge.presentation.gateway.registry import EventDispatchRegistry

__all__ = ["EventDispatchRegistry"]
