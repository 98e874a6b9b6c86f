"""Send Command Consumer Adapter.

MQ semantics를 담당하는 프로토콜 어댑터입니다.

SendCommandConsumerAdapter의 책임:
1. 메시지 decode (JSON)
2. 필수 필드 검증 (to, text)
3. 게이트웨이 연결 확인 후 Sender 호출
4. DeliveryOutcome 결정 → ack / reject 단 한 번 적용

RabbitMQCommandConsumer (Infra)
        │
        │ message stream (bytes)
        ▼
SendCommandConsumerAdapter (Presentation)
        │
        │ SendCommand
        ▼
MessageSender (Port)
        │
        │ bool
        ▼
SendCommandConsumerAdapter
        │
        └── ack / reject / reject+requeue / (unresolved)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aio_pika.exceptions import ChannelInvalidStateError

from apps.wa_bridge.application.common.result import DeliveryOutcome
from apps.wa_bridge.domain.exceptions import MalformedPayloadError, ValidationError
from apps.wa_bridge.domain.messages import SendCommand
from apps.wa_bridge.metrics import OUTBOUND_DELIVERIES

if TYPE_CHECKING:
    from aio_pika.abc import AbstractIncomingMessage

    from apps.wa_bridge.application.common.ports.message_sender import MessageSender

logger = logging.getLogger(__name__)


class SendCommandConsumerAdapter:
    """Consumer 어댑터.

    전송 명령을 Sender로 전달하고,
    DeliveryOutcome에 따라 ack/reject를 결정합니다.
    """

    def __init__(self, sender: "MessageSender") -> None:
        """Initialize.

        Args:
            sender: 게이트웨이 전송 포트 (DI)
        """
        self._sender = sender
        self._processed = 0
        self._retried = 0
        self._dropped = 0
        self._unresolved = 0

    async def on_message(self, message: "AbstractIncomingMessage") -> DeliveryOutcome:
        """메시지 처리 콜백.

        Args:
            message: RabbitMQ 메시지

        Returns:
            적용된 DeliveryOutcome
        """
        correlation_id = message.correlation_id
        try:
            outcome, correlation_id = await self._decide(message)
        except Exception as e:
            # 예상치 못한 오류 → 폐기 (무한 재전달 방지)
            logger.exception(
                "Unexpected error processing send command",
                extra={"correlation_id": correlation_id},
            )
            outcome = DeliveryOutcome.discard(f"unexpected error: {e}")

        outcome = await self._resolve(message, outcome, correlation_id)
        self._record(outcome)
        return outcome

    @property
    def stats(self) -> dict[str, int]:
        """통계 반환."""
        return {
            "processed": self._processed,
            "retried": self._retried,
            "dropped": self._dropped,
            "unresolved": self._unresolved,
        }

    async def _decide(
        self, message: "AbstractIncomingMessage"
    ) -> tuple[DeliveryOutcome, str | None]:
        # 1. Decode
        try:
            data = SendCommand.decode(message.body)
        except MalformedPayloadError as e:
            logger.error(
                "Invalid JSON message",
                extra={"correlation_id": message.correlation_id, "error": e.message},
            )
            return DeliveryOutcome.discard(e.message), message.correlation_id

        # 2. Validate
        try:
            command = SendCommand.from_dict(
                data, fallback_correlation_id=message.correlation_id
            )
        except ValidationError as e:
            correlation_id = data.get("correlationId") or message.correlation_id
            logger.error(
                "Invalid send command",
                extra={"correlation_id": correlation_id, "error": e.message},
            )
            return DeliveryOutcome.discard(e.message), correlation_id

        # 3. 게이트웨이 연결 확인 (재연결 후 성공 가능 → requeue)
        if not self._sender.is_connected():
            logger.warning(
                "WhatsApp not connected, requeueing command",
                extra={"correlation_id": command.correlation_id},
            )
            return DeliveryOutcome.requeue("whatsapp not connected"), command.correlation_id

        # 4. Send
        jid = self._sender.format_recipient(command.to)
        sent = await self._sender.send(jid, command.text, command.correlation_id)
        if sent:
            return DeliveryOutcome.acknowledged(), command.correlation_id

        # 일시/영구 실패 구분 없이 폐기
        logger.error(
            "Failed to send message, discarding command",
            extra={"correlation_id": command.correlation_id, "to": jid},
        )
        return DeliveryOutcome.discard("send failed"), command.correlation_id

    async def _resolve(
        self,
        message: "AbstractIncomingMessage",
        outcome: DeliveryOutcome,
        correlation_id: str | None,
    ) -> DeliveryOutcome:
        try:
            if outcome.is_acknowledged:
                await message.ack()
            elif outcome.should_requeue:
                await message.reject(requeue=True)
            else:
                await message.reject(requeue=False)
        except ChannelInvalidStateError:
            logger.warning(
                "Channel closed before message resolution, leaving for redelivery",
                extra={"correlation_id": correlation_id, "intended": outcome.status.value},
            )
            return DeliveryOutcome.unresolved("channel unavailable")
        except Exception as e:
            logger.error(
                "Failed to resolve message",
                extra={
                    "correlation_id": correlation_id,
                    "intended": outcome.status.value,
                    "error": str(e),
                },
            )
            return DeliveryOutcome.unresolved(str(e))

        logger.debug(
            "Message resolved",
            extra={
                "correlation_id": correlation_id,
                "outcome": outcome.status.value,
                "reason": outcome.reason,
            },
        )
        return outcome

    def _record(self, outcome: DeliveryOutcome) -> None:
        if outcome.is_acknowledged:
            self._processed += 1
        elif outcome.should_requeue:
            self._retried += 1
        elif outcome.should_discard:
            self._dropped += 1
        else:
            self._unresolved += 1
        OUTBOUND_DELIVERIES.labels(outcome=outcome.status.value).inc()
