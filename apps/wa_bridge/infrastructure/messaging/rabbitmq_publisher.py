"""RabbitMQ Publisher.

MessagePublisher 포트의 RabbitMQ 구현체입니다.
default exchange로 큐 이름을 routing key 삼아 발행합니다.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, Mapping

from aio_pika import DeliveryMode, Message

from apps.wa_bridge.domain.exceptions import DependencyUnavailableError

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel

    from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager
    from apps.wa_bridge.infrastructure.messaging.rabbitmq_connector import BrokerHandle

logger = logging.getLogger(__name__)


class RabbitMQPublisher:
    """RabbitMQ 기반 메시지 발행자.

    MessagePublisher 인터페이스 구현체입니다.
    큐는 채널마다 한 번 durable로 선언합니다.
    """

    def __init__(self, connection: "ConnectionManager[BrokerHandle]") -> None:
        """Initialize.

        Args:
            connection: 브로커 ConnectionManager
        """
        self._connection = connection
        self._declared_channel: AbstractChannel | None = None
        self._declared_queues: set[str] = set()

    async def publish(self, queue_name: str, message: Mapping[str, Any]) -> None:
        """메시지 발행.

        Args:
            queue_name: 대상 큐 이름
            message: JSON payload

        Raises:
            DependencyUnavailableError: 연결되지 않은 경우
        """
        handle = self._connection.get_handle()
        if handle is None:
            raise DependencyUnavailableError(self._connection.name)

        channel = handle.channel
        await self._ensure_queue(channel, queue_name)

        correlation_id = message.get("correlationId")
        amqp_message = Message(
            body=json.dumps(dict(message)).encode("utf-8"),
            delivery_mode=DeliveryMode.PERSISTENT,
            content_type="application/json",
            correlation_id=str(correlation_id) if correlation_id else None,
            message_id=str(uuid.uuid4()),
        )
        await channel.default_exchange.publish(amqp_message, routing_key=queue_name)

        logger.debug(
            "Message published",
            extra={"queue": queue_name, "correlation_id": correlation_id},
        )

    async def _ensure_queue(self, channel: "AbstractChannel", queue_name: str) -> None:
        if channel is not self._declared_channel:
            # 새 채널 (재연결 이후)
            self._declared_channel = channel
            self._declared_queues = set()
        if queue_name in self._declared_queues:
            return
        await channel.declare_queue(queue_name, durable=True)
        self._declared_queues.add(queue_name)
