"""Inbound Message Processor.

원시 게이트웨이 메시지를 CanonicalMessage로 정규화하여 incoming 큐에 발행합니다.

Pipeline:
    WAMessage
        │
        ├── evaluate_filters() ──▶ DROP (사유 기록)
        │
        ├── extract_text() ──────▶ DROP (unparseable)
        │
        └── CanonicalMessage ──▶ MessagePublisher.publish()

발행 실패는 로깅 후 무시합니다 (at-most-once).
게이트웨이 프로토콜에는 이미 전달된 이벤트의 재전달 개념이 없기 때문입니다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from apps.wa_bridge.application.inbound.filters import (
    DropReason,
    evaluate_filters,
    extract_text,
    normalize_timestamp,
)
from apps.wa_bridge.domain.messages import CanonicalMessage
from apps.wa_bridge.metrics import INBOUND_MESSAGES

if TYPE_CHECKING:
    from apps.wa_bridge.application.common.ports.message_publisher import (
        MessagePublisher,
    )

logger = logging.getLogger(__name__)

UNKNOWN_MESSAGE_ID = "unknown-wa-id"
UNKNOWN_PUSH_NAME = "Unknown"


@dataclass(frozen=True)
class InboundResult:
    """메시지 하나의 처리 결과."""

    correlation_id: str
    published: bool
    drop_reason: DropReason | None = None
    error: str | None = None


class InboundMessageProcessor:
    """수신 메시지 처리기."""

    def __init__(self, publisher: "MessagePublisher", queue_name: str) -> None:
        """Initialize.

        Args:
            publisher: 브로커 발행 포트 (DI)
            queue_name: incoming 큐 이름
        """
        self._publisher = publisher
        self._queue_name = queue_name
        self._stats: dict[str, int] = {}

    async def process(
        self,
        message: Mapping[str, Any],
        batch_type: str | None,
    ) -> InboundResult:
        """메시지 하나 처리.

        Args:
            message: 원시 WAMessage
            batch_type: 배치 알림 타입

        Returns:
            InboundResult
        """
        key = message.get("key") if isinstance(message.get("key"), Mapping) else {}
        msg_id = key.get("id") or UNKNOWN_MESSAGE_ID
        correlation_id = f"wa-in-{msg_id}-{uuid.uuid4().hex[:8]}"

        reason = evaluate_filters(message, batch_type)
        if reason is not None:
            return self._drop(correlation_id, msg_id, reason)

        sender = key.get("remoteJid")
        text = extract_text(message)
        if not sender or text is None:
            logger.debug(
                "Ignoring non-text/empty message",
                extra={"correlation_id": correlation_id, "sender": sender},
            )
            return self._drop(correlation_id, msg_id, DropReason.UNPARSEABLE)

        canonical = CanonicalMessage(
            correlation_id=correlation_id,
            external_message_id=msg_id,
            sender=sender,
            push_name=message.get("pushName") or UNKNOWN_PUSH_NAME,
            text=text,
            timestamp=normalize_timestamp(message.get("messageTimestamp")),
        )

        logger.info(
            "Inbound message received",
            extra={
                "correlation_id": correlation_id,
                "sender": sender,
                "wa_message_id": msg_id,
                "text_preview": text[:50],
            },
        )

        try:
            await self._publisher.publish(self._queue_name, canonical.to_payload())
        except Exception as e:
            # 재전달 불가 - 로깅 후 버림
            self._count("publish_failed")
            logger.error(
                "Failed to publish inbound message",
                extra={
                    "correlation_id": correlation_id,
                    "queue": self._queue_name,
                    "error": str(e),
                },
            )
            return InboundResult(correlation_id, published=False, error=str(e))

        self._count("published")
        logger.info(
            "Inbound message published",
            extra={"correlation_id": correlation_id, "queue": self._queue_name},
        )
        return InboundResult(correlation_id, published=True)

    def _drop(self, correlation_id: str, msg_id: str, reason: DropReason) -> InboundResult:
        self._count(f"dropped:{reason.value}")
        logger.debug(
            "Inbound message dropped",
            extra={
                "correlation_id": correlation_id,
                "wa_message_id": msg_id,
                "reason": reason.value,
            },
        )
        return InboundResult(correlation_id, published=False, drop_reason=reason)

    def _count(self, result: str) -> None:
        self._stats[result] = self._stats.get(result, 0) + 1
        INBOUND_MESSAGES.labels(result=result).inc()

    @property
    def stats(self) -> dict[str, int]:
        """통계 반환."""
        return dict(self._stats)
