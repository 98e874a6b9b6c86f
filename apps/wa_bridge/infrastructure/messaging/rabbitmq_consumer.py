"""RabbitMQ Command Consumer.

outgoing 큐의 consumer 등록을 관리합니다.
메시지 처리(decode/send/ack-reject)는 SendCommandConsumerAdapter에 위임합니다.

등록 정책:
- 큐당 활성 consumer 등록은 최대 하나 (consumer tag)
- 브로커 미연결 시 자체 backoff로 등록 재시도 (5s → ×1.5 → 최대 30s, 횟수 제한 없음)
- 브로커 PreDisconnect에서 등록 해제, 다음 Opened에서 재등록
  (새 채널에는 consumer가 없음)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from apps.wa_bridge.infrastructure.connection.lifecycle import Opened, PreDisconnect

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractQueue

    from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager
    from apps.wa_bridge.infrastructure.messaging.rabbitmq_connector import BrokerHandle
    from apps.wa_bridge.presentation.consumer.adapter import SendCommandConsumerAdapter

logger = logging.getLogger(__name__)


class RabbitMQCommandConsumer:
    """전송 명령 consumer."""

    def __init__(
        self,
        connection: "ConnectionManager[BrokerHandle]",
        adapter: "SendCommandConsumerAdapter",
        queue_name: str,
        *,
        start_delay: float = 5.0,
        start_max_delay: float = 30.0,
        start_factor: float = 1.5,
    ) -> None:
        """Initialize.

        Args:
            connection: 브로커 ConnectionManager
            adapter: 메시지 처리 어댑터 (DI)
            queue_name: outgoing 큐 이름
            start_delay: 등록 재시도 초기 지연 (초)
            start_max_delay: 등록 재시도 최대 지연 (초)
            start_factor: 등록 재시도 지연 배수
        """
        self._connection = connection
        self._adapter = adapter
        self._queue_name = queue_name
        self._start_delay = start_delay
        self._start_max_delay = start_max_delay
        self._start_factor = start_factor

        self._running = False
        self._lock = asyncio.Lock()
        self._queue: AbstractQueue | None = None
        self._channel: AbstractChannel | None = None
        self._consumer_tag: str | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._registrations = 0

    @property
    def is_registered(self) -> bool:
        """consumer 등록 여부."""
        return self._consumer_tag is not None

    async def start(self) -> None:
        """consumer 시작.

        브로커가 연결되어 있으면 즉시 등록하고, 아니면 재시도를 예약합니다.
        """
        self._running = True
        self._connection.events.subscribe(Opened, self._on_broker_opened)
        self._connection.events.subscribe(PreDisconnect, self._on_broker_pre_disconnect)

        if not await self._register():
            self._schedule_retry()

    async def stop(self) -> None:
        """consumer 중지.

        브로커 채널이 닫히기 전에 consumer tag를 취소해야 합니다.
        """
        self._running = False
        self._connection.events.unsubscribe(Opened, self._on_broker_opened)
        self._connection.events.unsubscribe(PreDisconnect, self._on_broker_pre_disconnect)

        pending = [task for task in self._tasks if not task.done()]
        if self._retry_task is not None and not self._retry_task.done():
            pending.append(self._retry_task)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._retry_task = None

        queue, tag, channel = self._queue, self._consumer_tag, self._channel
        self._drop_registration()
        if queue is not None and tag is not None and channel is not None and not channel.is_closed:
            try:
                await queue.cancel(tag)
                logger.info("Consumer cancelled", extra={"queue": self._queue_name})
            except Exception as e:
                logger.warning(
                    "Failed to cancel consumer",
                    extra={"queue": self._queue_name, "error": str(e)},
                )

    @property
    def stats(self) -> dict[str, Any]:
        """통계 반환."""
        return {
            "registered": self.is_registered,
            "registrations": self._registrations,
            **self._adapter.stats,
        }

    # ─────────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────────

    async def _register(self) -> bool:
        async with self._lock:
            if not self._running:
                return False
            if self._consumer_tag is not None:
                return True

            handle = self._connection.get_handle()
            if handle is None:
                return False

            try:
                queue = await handle.channel.declare_queue(self._queue_name, durable=True)
                # 수동 ack
                tag = await queue.consume(self._adapter.on_message, no_ack=False)
            except Exception as e:
                logger.error(
                    "Failed to start consumer",
                    extra={"queue": self._queue_name, "error": str(e)},
                )
                return False

            self._queue = queue
            self._channel = handle.channel
            self._consumer_tag = tag
            self._registrations += 1
            logger.info(
                "Started consuming messages",
                extra={"queue": self._queue_name, "consumer_tag": tag},
            )
            return True

    def _schedule_retry(self) -> None:
        if not self._running:
            return
        if self._retry_task is not None and not self._retry_task.done():
            return
        self._retry_task = asyncio.create_task(self._retry_loop())

    async def _retry_loop(self) -> None:
        delay = self._start_delay
        while self._running and self._consumer_tag is None:
            logger.warning(
                "Broker not ready, retrying consumer start",
                extra={"queue": self._queue_name, "delay_seconds": delay},
            )
            await asyncio.sleep(delay)
            if self._connection.is_connected() and await self._register():
                return
            delay = min(delay * self._start_factor, self._start_max_delay)

    async def _register_or_retry(self) -> None:
        if not await self._register():
            self._schedule_retry()

    def _drop_registration(self) -> None:
        self._queue = None
        self._channel = None
        self._consumer_tag = None

    # ─────────────────────────────────────────────────────────────────────
    # Broker lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def _on_broker_opened(self, event: "Opened[BrokerHandle]") -> None:
        if not self._running or self._consumer_tag is not None:
            return
        task = asyncio.ensure_future(self._register_or_retry())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_broker_pre_disconnect(self, event: "PreDisconnect[BrokerHandle]") -> None:
        if self._channel is None or self._channel is not event.handle.channel:
            return
        logger.info(
            "Broker disconnecting, consumer registration dropped",
            extra={"queue": self._queue_name},
        )
        self._drop_registration()
