"""Gateway Connector.

GatewaySession을 ConnectionManager의 Connector 계약에 맞춥니다.

종료 원인 분류:
- 401 (logged out) → permanent, 재연결 금지
- 그 외 모든 상태 코드 → transient
"""

from __future__ import annotations

import logging

from apps.wa_bridge.domain.connection import CloseCause, DisconnectInfo
from apps.wa_bridge.infrastructure.connection.connector import ConnectionListener
from apps.wa_bridge.infrastructure.gateway.session import (
    LOGGED_OUT_STATUS,
    GatewaySession,
)

logger = logging.getLogger(__name__)

# 게이트웨이 disconnect 상태 코드 (로깅용)
DISCONNECT_REASONS: dict[int, str] = {
    401: "logged_out",
    408: "connection_lost",
    411: "multidevice_mismatch",
    428: "connection_closed",
    440: "connection_replaced",
    500: "bad_session",
    503: "unavailable_service",
    515: "restart_required",
}


class GatewayConnector:
    """WhatsApp 게이트웨이 커넥터."""

    name = "whatsapp"

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        self._url = url
        self._token = token
        self._request_timeout = request_timeout

    async def open(self, listener: ConnectionListener[GatewaySession]) -> GatewaySession:
        """새 세션 생성.

        준비 완료는 connection.update(open) 수신 시 listener로 보고됩니다.
        """
        session = GatewaySession(
            self._url,
            listener,
            token=self._token,
            request_timeout=self._request_timeout,
        )
        await session.start()
        return session

    async def close(self, handle: GatewaySession) -> None:
        await handle.close()

    def abort(self, handle: GatewaySession, reason: str) -> None:
        handle.end(reason)

    def is_alive(self, handle: GatewaySession) -> bool:
        return handle.is_open

    def classify(self, info: DisconnectInfo) -> CloseCause:
        reason = DISCONNECT_REASONS.get(info.status_code or 0) or info.error or "unknown"
        if info.status_code == LOGGED_OUT_STATUS:
            return CloseCause.fatal(reason, info.status_code)
        return CloseCause.transient(reason, info.status_code)
