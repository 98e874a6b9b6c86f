"""WA Bridge Prometheus 메트릭

브리지 핵심 지표:
1. 연결 상태 (gateway / broker)
2. 재연결 스케줄링 횟수
3. 수신 메시지 처리 결과 (발행 / 폐기 사유)
4. 송신 명령 전달 결과 (ack / reject / requeue / unresolved)
"""

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

REGISTRY = CollectorRegistry(auto_describe=True)
METRICS_PATH = "/metrics"


def register_metrics(app: FastAPI) -> None:
    """Prometheus /metrics 엔드포인트 등록"""

    @app.get(METRICS_PATH, include_in_schema=False)
    async def metrics_endpoint() -> Response:
        return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


# ─────────────────────────────────────────────────────────────────────────────
# 1. 연결 메트릭
# ─────────────────────────────────────────────────────────────────────────────

CONNECTION_UP = Gauge(
    "wa_bridge_connection_up",
    "Connection status (1=open, 0=not open)",
    labelnames=["connection"],  # whatsapp, amqp
    registry=REGISTRY,
)

RECONNECTS_SCHEDULED = Counter(
    "wa_bridge_reconnects_scheduled_total",
    "Total reconnect timers armed",
    labelnames=["connection"],
    registry=REGISTRY,
)


# ─────────────────────────────────────────────────────────────────────────────
# 2. 메시지 메트릭
# ─────────────────────────────────────────────────────────────────────────────

INBOUND_MESSAGES = Counter(
    "wa_bridge_inbound_messages_total",
    "Inbound gateway messages by result",
    labelnames=["result"],  # published, publish_failed, dropped:<reason>
    registry=REGISTRY,
)

OUTBOUND_DELIVERIES = Counter(
    "wa_bridge_outbound_deliveries_total",
    "Outbound send commands by delivery outcome",
    labelnames=["outcome"],
    registry=REGISTRY,
)
