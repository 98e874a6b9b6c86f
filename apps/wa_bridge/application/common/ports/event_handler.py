"""Gateway Event Handler Port.

게이트웨이 이벤트 핸들러 인터페이스입니다.
"""

from __future__ import annotations

from typing import Any, Awaitable, Protocol


class GatewayEventHandler(Protocol):
    """게이트웨이 이벤트 핸들러.

    하나의 이벤트 이름을 선언하고, 해당 이벤트의 payload를 처리합니다.
    handle()은 동기 함수이거나 코루틴일 수 있습니다.

    구현체:
        - MessagesUpsertHandler (presentation/gateway/handlers/)
        - ConnectionUpdateHandler (presentation/gateway/handlers/)
    """

    event_name: str

    def handle(self, payload: Any) -> Awaitable[None] | None:
        """이벤트 처리.

        Args:
            payload: 게이트웨이 이벤트 데이터
        """
        ...
