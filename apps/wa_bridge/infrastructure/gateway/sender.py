"""WhatsApp Sender.

게이트웨이 세션을 통한 텍스트 메시지 전송 (MessageSender 구현체).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager
    from apps.wa_bridge.infrastructure.gateway.session import GatewaySession

logger = logging.getLogger(__name__)

DIRECT_CHAT_SUFFIX = "@s.whatsapp.net"
GROUP_CHAT_SUFFIX = "@g.us"

# 이 길이 미만의 숫자 식별자는 개인 전화번호로 간주
GROUP_ID_MIN_LENGTH = 14


class WhatsAppSender:
    """게이트웨이 메시지 송신자.

    전송 실패는 예외로 전파하지 않고 False로 보고합니다.
    """

    def __init__(self, connection: "ConnectionManager[GatewaySession]") -> None:
        self._connection = connection

    def is_connected(self) -> bool:
        """게이트웨이 연결 여부."""
        return self._connection.is_connected()

    def format_recipient(self, to: str) -> str:
        """수신자 식별자를 JID로 변환.

        - '@'가 포함되어 있으면 그대로 사용
        - 14자 미만이면 개인 채팅 ({to}@s.whatsapp.net)
        - 그 외에는 그룹 ({to}@g.us)
        """
        if "@" in to:
            return to
        if len(to) < GROUP_ID_MIN_LENGTH:
            return f"{to}{DIRECT_CHAT_SUFFIX}"
        return f"{to}{GROUP_CHAT_SUFFIX}"

    async def send(self, to: str, text: str, correlation_id: str | None = None) -> bool:
        """메시지 전송.

        Args:
            to: 수신자 (JID 또는 숫자 식별자)
            text: 본문
            correlation_id: 추적용 ID

        Returns:
            전송 성공 여부
        """
        # suspend 전에 handle 고정 (전송 중 재연결되어도 같은 세션 사용)
        session = self._connection.get_handle()
        if session is None:
            logger.error(
                "Cannot send message, WhatsApp is not connected",
                extra={"correlation_id": correlation_id, "to": to},
            )
            return False

        jid = self.format_recipient(to)
        try:
            result = await session.send_message(jid, text)
        except Exception as e:
            logger.error(
                "Failed to send WhatsApp message",
                extra={"correlation_id": correlation_id, "to": jid, "error": str(e)},
            )
            return False

        key = result.get("key")
        logger.info(
            "WhatsApp message sent",
            extra={
                "correlation_id": correlation_id,
                "to": jid,
                "message_id": key.get("id") if isinstance(key, dict) else None,
            },
        )
        return True
