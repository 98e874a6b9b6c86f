"""Domain Layer.

연결 상태 머신, 메시지 타입, 예외 계층을 정의합니다.
"""

from apps.wa_bridge.domain.connection import (
    CloseCause,
    ConnectionState,
    DisconnectInfo,
    ReconnectPolicy,
)
from apps.wa_bridge.domain.messages import CanonicalMessage, SendCommand

__all__ = [
    "CanonicalMessage",
    "CloseCause",
    "ConnectionState",
    "DisconnectInfo",
    "ReconnectPolicy",
    "SendCommand",
]
