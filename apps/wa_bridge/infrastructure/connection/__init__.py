"""Connection Infrastructure.

게이트웨이/브로커 공용 연결 생명주기 관리입니다.
"""

from apps.wa_bridge.infrastructure.connection.lifecycle import (
    Closed,
    FatalFailure,
    LifecycleBus,
    Opened,
    PreDisconnect,
    QrReceived,
)
from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager

__all__ = [
    "Closed",
    "ConnectionManager",
    "FatalFailure",
    "LifecycleBus",
    "Opened",
    "PreDisconnect",
    "QrReceived",
]
