"""Ports (Interfaces).

Infrastructure와의 계약을 정의하는 인터페이스입니다.
"""

from apps.wa_bridge.application.common.ports.event_handler import GatewayEventHandler
from apps.wa_bridge.application.common.ports.message_publisher import MessagePublisher
from apps.wa_bridge.application.common.ports.message_sender import MessageSender

__all__ = ["GatewayEventHandler", "MessagePublisher", "MessageSender"]
