"""HTTP Error Handlers."""

from apps.wa_bridge.presentation.http.errors.handlers import register_exception_handlers

__all__ = ["register_exception_handlers"]
