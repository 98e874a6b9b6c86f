"""messages.upsert Handler.

게이트웨이의 메시지 도착 이벤트를 InboundMessageProcessor로 전달합니다.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from apps.wa_bridge.infrastructure.gateway.events import MESSAGES_UPSERT

if TYPE_CHECKING:
    from apps.wa_bridge.application.inbound.processor import (
        InboundMessageProcessor,
        InboundResult,
    )

logger = logging.getLogger(__name__)


class MessagesUpsertHandler:
    """메시지 도착 핸들러.

    payload: {"type": "notify" | "append", "messages": [WAMessage, ...]}
    """

    event_name = MESSAGES_UPSERT

    def __init__(self, processor: "InboundMessageProcessor") -> None:
        self._processor = processor

    async def handle(self, payload: Any) -> list["InboundResult"]:
        """배치 내 메시지를 하나씩 처리."""
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring malformed messages.upsert payload")
            return []

        batch_type = payload.get("type")
        messages = payload.get("messages")
        if not isinstance(messages, list):
            return []

        results = []
        for message in messages:
            if not isinstance(message, Mapping):
                logger.debug("Skipping non-object message entry")
                continue
            results.append(await self._processor.process(message, batch_type))
        return results
