"""RabbitMQ Connector.

aio-pika 연결/채널을 ConnectionManager의 Connector 계약에 맞춥니다.

connect_robust 대신 connect를 사용합니다.
재연결은 ConnectionManager가 소유하기 때문입니다 (이중 재연결 방지).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aio_pika

from apps.wa_bridge.domain.connection import CloseCause, DisconnectInfo

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractConnection

    from apps.wa_bridge.infrastructure.connection.connector import ConnectionListener

logger = logging.getLogger(__name__)


@dataclass
class BrokerHandle:
    """브로커 연결 handle (connection + channel)."""

    connection: "AbstractConnection"
    channel: "AbstractChannel"

    @property
    def is_open(self) -> bool:
        """연결/채널 사용 가능 여부."""
        return not self.connection.is_closed and not self.channel.is_closed


class RabbitMQConnector:
    """RabbitMQ 커넥터.

    브로커 종료 원인은 모두 transient로 분류합니다.
    """

    name = "amqp"

    def __init__(self, amqp_url: str, *, prefetch_count: int = 10) -> None:
        """Initialize.

        Args:
            amqp_url: RabbitMQ 연결 URL
            prefetch_count: 채널 prefetch (미확인 메시지 상한)
        """
        self._amqp_url = amqp_url
        self._prefetch_count = prefetch_count
        self._closing: set[asyncio.Future[Any]] = set()

    async def open(self, listener: "ConnectionListener[BrokerHandle]") -> BrokerHandle:
        """RabbitMQ 연결.

        채널 준비까지 마치면 반환 전에 listener.on_ready()를 호출합니다.
        """
        connection = await aio_pika.connect(self._amqp_url)
        try:
            channel = await connection.channel()
            # Prefetch 설정 (한 번에 처리할 메시지 수)
            await channel.set_qos(prefetch_count=self._prefetch_count)
        except BaseException:
            # 연결 타임아웃에 의한 취소 포함
            await connection.close()
            raise

        handle = BrokerHandle(connection=connection, channel=channel)

        def on_close(_sender: Any, exc: BaseException | None = None) -> None:
            # 채널만 닫힌 경우에도 연결을 정리 (handle 단위로 교체)
            self._close_quietly(handle)
            listener.on_close(
                handle,
                DisconnectInfo(error=str(exc) if exc else "connection closed"),
            )

        connection.close_callbacks.add(on_close)
        channel.close_callbacks.add(on_close)

        logger.info(
            "RabbitMQ connected",
            extra={"prefetch_count": self._prefetch_count},
        )
        listener.on_ready(handle)
        return handle

    async def close(self, handle: BrokerHandle) -> None:
        """연결 종료."""
        if not handle.connection.is_closed:
            await handle.connection.close()
            logger.info("RabbitMQ connection closed")

    def abort(self, handle: BrokerHandle, reason: str) -> None:
        logger.warning("Aborting RabbitMQ connection", extra={"reason": reason})
        self._close_quietly(handle)

    def is_alive(self, handle: BrokerHandle) -> bool:
        return handle.is_open

    def classify(self, info: DisconnectInfo) -> CloseCause:
        return CloseCause.transient(info.error or "connection closed", info.status_code)

    def _close_quietly(self, handle: BrokerHandle) -> None:
        if handle.connection.is_closed:
            return
        future = asyncio.ensure_future(handle.connection.close())
        self._closing.add(future)
        future.add_done_callback(self._on_closed)

    def _on_closed(self, future: asyncio.Future[Any]) -> None:
        self._closing.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.warning(
                "RabbitMQ close failed",
                extra={"error": str(future.exception())},
            )
