"""Delivery Outcome.

MQ의 ack/reject 정책을 Application 계층의 언어로 추상화합니다.

소비된 브로커 메시지 하나당 정확히 하나의 결과가 결정됩니다:

| 상태 | MQ 동작 | 의미 |
|------|---------|------|
| ACKNOWLEDGED | ack | 전송 성공 |
| REJECTED_DISCARD | reject(requeue=False) | 자가 복구 불가 → 폐기 |
| REJECTED_REQUEUE | reject(requeue=True) | 게이트웨이 복구 후 재시도 |
| UNRESOLVED | (없음) | 채널 유실 → 브로커 재전달에 위임 |
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutcomeStatus(str, Enum):
    """전달 결과 상태."""

    ACKNOWLEDGED = "acknowledged"
    REJECTED_DISCARD = "rejected_discard"
    REJECTED_REQUEUE = "rejected_requeue"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class DeliveryOutcome:
    """전달 결과.

    핵심 원칙:
    - Adapter가 결과를 먼저 결정하고
    - 결정된 결과를 단 한 번만 MQ에 적용
    """

    status: OutcomeStatus
    reason: str | None = None

    @property
    def is_acknowledged(self) -> bool:
        """ack 여부."""
        return self.status == OutcomeStatus.ACKNOWLEDGED

    @property
    def should_requeue(self) -> bool:
        """requeue 여부."""
        return self.status == OutcomeStatus.REJECTED_REQUEUE

    @property
    def should_discard(self) -> bool:
        """폐기 여부."""
        return self.status == OutcomeStatus.REJECTED_DISCARD

    @property
    def is_unresolved(self) -> bool:
        """미해결 여부."""
        return self.status == OutcomeStatus.UNRESOLVED

    @classmethod
    def acknowledged(cls, reason: str | None = None) -> DeliveryOutcome:
        """ack 결과 생성."""
        return cls(status=OutcomeStatus.ACKNOWLEDGED, reason=reason)

    @classmethod
    def discard(cls, reason: str) -> DeliveryOutcome:
        """폐기 결과 생성."""
        return cls(status=OutcomeStatus.REJECTED_DISCARD, reason=reason)

    @classmethod
    def requeue(cls, reason: str) -> DeliveryOutcome:
        """requeue 결과 생성."""
        return cls(status=OutcomeStatus.REJECTED_REQUEUE, reason=reason)

    @classmethod
    def unresolved(cls, reason: str) -> DeliveryOutcome:
        """미해결 결과 생성."""
        return cls(status=OutcomeStatus.UNRESOLVED, reason=reason)
