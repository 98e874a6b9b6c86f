"""Connector Protocol.

ConnectionManager가 전송 계층에 요구하는 계약입니다.

| 구현체 | handle 타입 |
|--------|------------|
| GatewayConnector | GatewaySession (WebSocket) |
| RabbitMQConnector | BrokerHandle (aio-pika connection + channel) |

계약:
- open()은 준비 완료/종료를 listener로 보고합니다 (open() 반환 전에 보고해도 됨)
- abort()는 반드시 listener.on_close()로 이어져야 합니다
  (모든 연결 종료 원인이 하나의 close 경로를 타도록)
- close()/abort()는 이미 닫힌 handle에 대해서도 안전해야 합니다
"""

from __future__ import annotations

from typing import Protocol, TypeVar

from apps.wa_bridge.domain.connection import CloseCause, DisconnectInfo

H = TypeVar("H")


class ConnectionListener(Protocol[H]):
    """연결 시도 하나에 묶인 이벤트 수신자."""

    def on_ready(self, handle: H) -> None:
        """연결 준비 완료."""
        ...

    def on_close(self, handle: H, info: DisconnectInfo) -> None:
        """연결 종료."""
        ...

    def on_qr(self, code: str) -> None:
        """페어링 QR 코드 수신."""
        ...


class Connector(Protocol[H]):
    """전송 계층 커넥터."""

    name: str

    async def open(self, listener: ConnectionListener[H]) -> H:
        """새 연결 생성."""
        ...

    async def close(self, handle: H) -> None:
        """Graceful close."""
        ...

    def abort(self, handle: H, reason: str) -> None:
        """강제 종료."""
        ...

    def is_alive(self, handle: H) -> bool:
        """handle 사용 가능 여부."""
        ...

    def classify(self, info: DisconnectInfo) -> CloseCause:
        """종료 원인 분류 (permanent / transient)."""
        ...
