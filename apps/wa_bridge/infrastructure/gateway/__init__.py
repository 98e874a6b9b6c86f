"""WhatsApp Gateway Infrastructure."""

from apps.wa_bridge.infrastructure.gateway.connector import GatewayConnector
from apps.wa_bridge.infrastructure.gateway.events import EventTable
from apps.wa_bridge.infrastructure.gateway.sender import WhatsAppSender
from apps.wa_bridge.infrastructure.gateway.session import GatewaySession

__all__ = ["EventTable", "GatewayConnector", "GatewaySession", "WhatsAppSender"]
