"""Dependency Injection.

Composition Root입니다. 모든 의존성을 여기서 조립합니다.

                    ┌──────────── gateway ConnectionManager ◀── WhatsAppSender
                    │                    │                          ▲
 EventDispatchRegistry ◀── Opened/PreDisconnect                     │
        │                                                SendCommandConsumerAdapter
 MessagesUpsertHandler                                              ▲
        │                                                 RabbitMQCommandConsumer
 InboundMessageProcessor ──▶ RabbitMQPublisher ──▶ broker ConnectionManager ◀┘
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import Depends

from apps.wa_bridge.application.common.ports.message_publisher import MessagePublisher
from apps.wa_bridge.application.inbound.processor import InboundMessageProcessor
from apps.wa_bridge.domain.connection import ReconnectPolicy
from apps.wa_bridge.infrastructure.connection.lifecycle import FatalFailure, QrReceived
from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager
from apps.wa_bridge.infrastructure.gateway.connector import GatewayConnector
from apps.wa_bridge.infrastructure.gateway.sender import WhatsAppSender
from apps.wa_bridge.infrastructure.messaging.rabbitmq_connector import RabbitMQConnector
from apps.wa_bridge.infrastructure.messaging.rabbitmq_consumer import (
    RabbitMQCommandConsumer,
)
from apps.wa_bridge.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher
from apps.wa_bridge.presentation.consumer.adapter import SendCommandConsumerAdapter
from apps.wa_bridge.presentation.gateway.handlers import (
    ConnectionUpdateHandler,
    MessagesUpsertHandler,
)
from apps.wa_bridge.presentation.gateway.registry import EventDispatchRegistry
from apps.wa_bridge.setup.config import Settings, get_settings

if TYPE_CHECKING:
    from apps.wa_bridge.infrastructure.gateway.session import GatewaySession
    from apps.wa_bridge.infrastructure.messaging.rabbitmq_connector import BrokerHandle

logger = logging.getLogger(__name__)


class Container:
    """의존성 컨테이너.

    모든 의존성을 생성하고 관리합니다.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._gateway: ConnectionManager[GatewaySession] | None = None
        self._broker: ConnectionManager[BrokerHandle] | None = None
        self._publisher: RabbitMQPublisher | None = None
        self._sender: WhatsAppSender | None = None
        self._registry: EventDispatchRegistry | None = None
        self._consumer: RabbitMQCommandConsumer | None = None

    def build(self) -> None:
        """의존성 조립 (연결 없음)."""
        settings = self._settings

        # Infrastructure 생성
        self._broker = ConnectionManager(
            RabbitMQConnector(settings.amqp_url, prefetch_count=settings.prefetch_count),
            policy=self._policy(),
            connect_timeout=settings.connect_timeout,
        )
        self._gateway = ConnectionManager(
            GatewayConnector(
                settings.gateway_url,
                token=settings.gateway_token,
                request_timeout=settings.gateway_request_timeout,
            ),
            policy=self._policy(),
            connect_timeout=settings.connect_timeout,
        )
        self._publisher = RabbitMQPublisher(self._broker)
        self._sender = WhatsAppSender(self._gateway)

        # Application / Presentation 생성 (DI)
        processor = InboundMessageProcessor(self._publisher, settings.queue_incoming)
        self._registry = EventDispatchRegistry(
            self._gateway,
            [MessagesUpsertHandler(processor), ConnectionUpdateHandler()],
        )
        self._consumer = RabbitMQCommandConsumer(
            self._broker,
            SendCommandConsumerAdapter(self._sender),
            settings.queue_outgoing,
            start_delay=settings.consumer_start_delay,
            start_max_delay=settings.consumer_start_max_delay,
            start_factor=settings.consumer_start_factor,
        )

        self._gateway.events.subscribe(QrReceived, self._on_qr)
        self._gateway.events.subscribe(FatalFailure, self._on_fatal)

    async def init(self) -> None:
        """의존성 초기화 및 연결 시작.

        초기 연결 실패는 각 ConnectionManager가 backoff로 재시도합니다.
        """
        if self._gateway is None:
            self.build()

        self.registry.attach()
        await self.broker.start()
        await self.gateway.start()
        await self.consumer.start()
        logger.info("Dependencies initialized")

    async def close(self) -> None:
        """리소스 정리.

        순서: consumer 등록 취소 → 핸들러 해제 → 게이트웨이 → 브로커
        """
        if self._consumer:
            await self._consumer.stop()
        if self._registry:
            await self._registry.detach()
        if self._gateway:
            await self._gateway.stop()
        if self._broker:
            await self._broker.stop()

    def _policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(
            initial_delay=self._settings.reconnect_initial_delay,
            max_delay=self._settings.reconnect_max_delay,
            factor=self._settings.reconnect_factor,
        )

    def _on_qr(self, event: QrReceived) -> None:
        logger.warning(
            "Scan the QR code with the WhatsApp app to pair this bridge",
            extra={"qr": event.code},
        )

    def _on_fatal(self, event: FatalFailure) -> None:
        logger.critical(
            "WhatsApp session logged out, re-pair the device and restart the bridge",
            extra={"reason": event.cause.reason, "error": event.error.message},
        )

    @property
    def settings(self) -> Settings:
        """설정."""
        return self._settings

    @property
    def gateway(self) -> ConnectionManager[GatewaySession]:
        """게이트웨이 ConnectionManager."""
        if not self._gateway:
            raise RuntimeError("Container not initialized")
        return self._gateway

    @property
    def broker(self) -> ConnectionManager[BrokerHandle]:
        """브로커 ConnectionManager."""
        if not self._broker:
            raise RuntimeError("Container not initialized")
        return self._broker

    @property
    def publisher(self) -> RabbitMQPublisher:
        """메시지 발행자."""
        if not self._publisher:
            raise RuntimeError("Container not initialized")
        return self._publisher

    @property
    def sender(self) -> WhatsAppSender:
        """게이트웨이 송신자."""
        if not self._sender:
            raise RuntimeError("Container not initialized")
        return self._sender

    @property
    def registry(self) -> EventDispatchRegistry:
        """이벤트 디스패치 레지스트리."""
        if not self._registry:
            raise RuntimeError("Container not initialized")
        return self._registry

    @property
    def consumer(self) -> RabbitMQCommandConsumer:
        """전송 명령 consumer."""
        if not self._consumer:
            raise RuntimeError("Container not initialized")
        return self._consumer


_container: Container | None = None


def get_container() -> Container:
    """Container 싱글톤."""
    global _container
    if _container is None:
        _container = Container()
    return _container


# ============================================================
# FastAPI Dependencies
# ============================================================


def get_publisher() -> MessagePublisher:
    """메시지 발행자."""
    return get_container().publisher


def get_connections() -> dict[str, ConnectionManager[Any]]:
    """헬스체크 대상 연결 (이름 → ConnectionManager)."""
    container = get_container()
    return {
        container.broker.name: container.broker,
        container.gateway.name: container.gateway,
    }


# Type aliases for FastAPI Depends
SettingsDep = Annotated[Settings, Depends(get_settings)]
PublisherDep = Annotated[MessagePublisher, Depends(get_publisher)]
ConnectionsDep = Annotated[dict[str, ConnectionManager[Any]], Depends(get_connections)]
