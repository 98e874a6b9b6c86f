"""Gateway Event Handlers."""

from apps.wa_bridge.presentation.gateway.handlers.connection_update import (
    ConnectionUpdateHandler,
)
from apps.wa_bridge.presentation.gateway.handlers.messages_upsert import (
    MessagesUpsertHandler,
)

__all__ = ["ConnectionUpdateHandler", "MessagesUpsertHandler"]
