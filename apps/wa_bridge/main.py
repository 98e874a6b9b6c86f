"""WA Bridge Main Application.

WhatsApp 게이트웨이 세션과 RabbitMQ를 잇는 브리지입니다.

Architecture:
    WhatsApp gateway (WebSocket)
        │  messages.upsert
        ▼
    EventDispatchRegistry → InboundMessageProcessor ──▶ RabbitMQ (incoming)

    RabbitMQ (outgoing) ──▶ SendCommandConsumerAdapter → WhatsAppSender
                                                            │
                                                            ▼
                                                  WhatsApp gateway

HTTP:
    POST /message/send   전송 명령 발행
    GET  /health         연결 상태
    GET  /metrics        Prometheus

Run:
    python -m apps.wa_bridge.main
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from apps.wa_bridge.metrics import register_metrics
from apps.wa_bridge.presentation.http.controllers import health_router, message_router
from apps.wa_bridge.presentation.http.errors import register_exception_handlers
from apps.wa_bridge.setup.config import get_settings
from apps.wa_bridge.setup.dependencies import get_container
from apps.wa_bridge.setup.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """앱 라이프사이클 관리.

    Startup:
      - 로깅 설정
      - Container 초기화 (브로커/게이트웨이 연결 시작, consumer 등록)

    Shutdown:
      - consumer 취소 → 핸들러 해제 → 게이트웨이 → 브로커
    """
    setup_logging()
    settings = get_settings()
    container = get_container()

    logger.info(
        "WA Bridge starting",
        extra={
            "service_name": settings.service_name,
            "service_version": settings.service_version,
            "env": settings.environment,
            "queue_incoming": settings.queue_incoming,
            "queue_outgoing": settings.queue_outgoing,
        },
    )
    await container.init()

    yield

    logger.info("WA Bridge shutting down")
    await container.close()
    logger.info("WA Bridge stopped")


def create_app() -> FastAPI:
    """FastAPI 앱 팩토리.

    Returns:
        설정된 FastAPI 앱 인스턴스
    """
    settings = get_settings()

    app = FastAPI(
        title="WA Bridge",
        description="WhatsApp ⇄ RabbitMQ bridge",
        version=settings.service_version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)
    register_metrics(app)

    app.include_router(message_router)
    app.include_router(health_router)

    return app


# 앱 인스턴스 (uvicorn용)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "apps.wa_bridge.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
