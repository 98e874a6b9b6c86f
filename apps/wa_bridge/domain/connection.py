"""Connection Domain.

연결 생명주기 상태와 재연결 정책을 정의합니다.

상태 머신:
    IDLE ──connect()──▶ CONNECTING ──ready──▶ OPEN
                            │                   │
                            │ open 실패/timeout  │ 예기치 않은 close
                            ▼                   ▼
                          CLOSED ◀──────────────┘
                            │
                            └── schedule_reconnect() ──▶ CONNECTING

    permanent close (logout) ──▶ FAILED_PERMANENTLY (재연결 없음)
    stop() ──▶ CLOSING ──▶ CLOSED
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConnectionState(str, Enum):
    """연결 상태."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED_PERMANENTLY = "failed_permanently"


@dataclass
class ReconnectPolicy:
    """Exponential Backoff 재연결 정책.

    단위에 독립적입니다 (설정에서는 초 단위 사용).

    - attempt는 연결 실패 또는 예기치 않은 close 이후에만 증가
    - OPEN 전환 성공 시에만 0으로 리셋
    - delay(attempt) = min(initial_delay * factor^attempt, max_delay)
    """

    initial_delay: float = 5.0
    max_delay: float = 60.0
    factor: float = 2.0
    attempt: int = 0

    def delay(self, attempt: int | None = None) -> float:
        """재연결 지연 시간 계산.

        Args:
            attempt: 시도 횟수 (None이면 현재 attempt)

        Returns:
            지연 시간
        """
        if attempt is None:
            attempt = self.attempt
        return min(self.initial_delay * (self.factor**attempt), self.max_delay)

    def record_failure(self) -> None:
        """실패 기록."""
        self.attempt += 1

    def reset(self) -> None:
        """성공 시 리셋."""
        self.attempt = 0


@dataclass(frozen=True)
class DisconnectInfo:
    """Connector가 보고하는 원시 연결 종료 정보."""

    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class CloseCause:
    """분류된 연결 종료 원인.

    - permanent: 명시적 logout / 인증 철회 → 재연결 금지
    - transient: 그 외 모든 원인 → backoff 재연결
    """

    permanent: bool
    reason: str
    status_code: int | None = None

    @classmethod
    def transient(cls, reason: str, status_code: int | None = None) -> CloseCause:
        """일시적 원인 생성."""
        return cls(permanent=False, reason=reason, status_code=status_code)

    @classmethod
    def fatal(cls, reason: str, status_code: int | None = None) -> CloseCause:
        """영구적 원인 생성."""
        return cls(permanent=True, reason=reason, status_code=status_code)
