"""Message Domain.

큐를 오가는 두 메시지 타입입니다.

- CanonicalMessage: 게이트웨이 수신 메시지의 정규화 표현 (gateway → incoming 큐)
- SendCommand: 전송 명령 (outgoing 큐 → gateway)
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any

from apps.wa_bridge.domain.exceptions import MalformedPayloadError, ValidationError


@dataclass(frozen=True)
class CanonicalMessage:
    """정규화된 수신 메시지.

    InboundMessageProcessor가 생성하며, publish 이후 보관하지 않습니다.
    """

    correlation_id: str
    external_message_id: str
    sender: str
    push_name: str
    text: str
    timestamp: int | None = None

    def to_payload(self) -> dict[str, Any]:
        """incoming 큐 payload로 변환."""
        return {
            "correlationId": self.correlation_id,
            "externalMessageId": self.external_message_id,
            "waTimestamp": self.timestamp,
            "from": self.sender,
            "pushName": self.push_name,
            "text": self.text,
        }


@dataclass(frozen=True)
class SendCommand:
    """전송 명령.

    브로커에서 opaque bytes로 도착하며, correlation_id가 없으면 생성합니다.
    """

    to: str
    text: str
    correlation_id: str

    @staticmethod
    def decode(body: bytes) -> dict[str, Any]:
        """메시지 body를 구조화된 dict로 디코딩.

        Raises:
            MalformedPayloadError: JSON이 아니거나 object가 아닌 경우
        """
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayloadError(f"Unparseable payload: {e}") from e

        if not isinstance(data, dict):
            raise MalformedPayloadError(
                f"Payload must be an object, got {type(data).__name__}"
            )
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        fallback_correlation_id: str | None = None,
    ) -> SendCommand:
        """dict에서 SendCommand 생성.

        Args:
            data: 디코딩된 payload
            fallback_correlation_id: payload에 correlationId가 없을 때 사용할 값
                (AMQP correlation_id 속성 등)

        Raises:
            ValidationError: to 또는 text가 없거나 비어있는 경우
        """
        to = data.get("to")
        text = data.get("text")
        if not isinstance(to, str) or not to.strip():
            raise ValidationError("Missing 'to'")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Missing 'text'")

        correlation_id = data.get("correlationId") or fallback_correlation_id
        if not correlation_id:
            correlation_id = f"gen-{uuid.uuid4()}"

        return cls(to=to.strip(), text=text, correlation_id=str(correlation_id))
