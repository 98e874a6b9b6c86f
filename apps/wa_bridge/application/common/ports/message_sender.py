"""Message Sender Port.

게이트웨이 전송 인터페이스입니다.
"""

from __future__ import annotations

from typing import Protocol


class MessageSender(Protocol):
    """메시지 전송 인터페이스.

    구현체:
        - WhatsAppSender (infrastructure/gateway/)
    """

    def is_connected(self) -> bool:
        """게이트웨이 연결 여부."""
        ...

    def format_recipient(self, to: str) -> str:
        """수신자 식별자를 게이트웨이 JID로 변환."""
        ...

    async def send(self, to: str, text: str, correlation_id: str | None = None) -> bool:
        """텍스트 전송.

        Args:
            to: 포맷된 수신자 JID
            text: 메시지 본문
            correlation_id: 추적용 ID

        Returns:
            전송되었으면 True. False는 항상 "전송되지 않음"을 의미합니다
            (나중을 위해 대기열에 넣었다는 뜻이 아님).
        """
        ...
