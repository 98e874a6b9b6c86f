"""connection.update Handler.

게이트웨이 연결 상태 변화를 로깅합니다.
상태 전이는 ConnectionManager가 담당하므로 여기서는 관찰만 합니다.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from apps.wa_bridge.infrastructure.gateway.events import CONNECTION_UPDATE

logger = logging.getLogger(__name__)


class ConnectionUpdateHandler:
    """연결 상태 로깅 핸들러."""

    event_name = CONNECTION_UPDATE

    def handle(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            return

        connection = payload.get("connection")
        if connection is None:
            return

        last = payload.get("lastDisconnect")
        last = last if isinstance(last, Mapping) else {}
        logger.info(
            "Gateway connection update",
            extra={
                "connection_state": connection,
                "status_code": last.get("statusCode"),
                "error": last.get("error"),
                "is_new_login": payload.get("isNewLogin"),
            },
        )
