"""Message Publisher Port.

브로커 발행 인터페이스입니다.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol


class MessagePublisher(Protocol):
    """메시지 발행 인터페이스.

    구현체:
        - RabbitMQPublisher (infrastructure/messaging/)
    """

    async def publish(self, queue_name: str, message: Mapping[str, Any]) -> None:
        """메시지를 큐에 발행.

        Args:
            queue_name: 대상 큐 이름
            message: JSON 직렬화 가능한 payload

        Raises:
            DependencyUnavailableError: 브로커 연결이 없는 경우
        """
        ...
