"""Health Controller.

- GET /health   브로커/게이트웨이 연결 상태 (하나라도 down이면 503)
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from apps.wa_bridge.setup.dependencies import ConnectionsDep

router = APIRouter(tags=["health"])


class ServiceStatus(BaseModel):
    """의존성 상태."""

    name: str = Field(description="연결 이름 (amqp, whatsapp)")
    status: Literal["up", "down"]


class HealthResponse(BaseModel):
    """헬스체크 응답."""

    status: Literal["ok", "error"]
    services: list[ServiceStatus]


@router.get("/health", response_model=HealthResponse)
async def health(connections: ConnectionsDep, response: Response) -> HealthResponse:
    """연결 상태 조회."""
    services = [
        ServiceStatus(name=name, status="up" if connection.is_connected() else "down")
        for name, connection in connections.items()
    ]
    healthy = all(service.status == "up" for service in services)
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(status="ok" if healthy else "error", services=services)
