"""Lifecycle Event Bus.

ConnectionManager가 발행하는 연결 생명주기 이벤트의 타입 있는 pub/sub 채널입니다.

이벤트 종류 (닫힌 집합):
- PreDisconnect: 기존 handle 해제 직전 (의존 컴포넌트가 리스너를 떼어낼 시점)
- Opened: 연결 준비 완료
- Closed: OPEN/CONNECTING에서 벗어남 (분류된 원인 포함)
- QrReceived: 게이트웨이 페어링 QR 코드
- FatalFailure: 영구 실패 (운영자 개입 필요)

구독자 예외는 격리되어 로깅되며 다른 구독자 전달을 막지 않습니다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from apps.wa_bridge.domain.connection import CloseCause
from apps.wa_bridge.domain.exceptions import PermanentAuthError

logger = logging.getLogger(__name__)

H = TypeVar("H")


@dataclass(frozen=True)
class PreDisconnect(Generic[H]):
    """기존 handle 해제 직전."""

    connection: str
    handle: H


@dataclass(frozen=True)
class Opened(Generic[H]):
    """연결 준비 완료."""

    connection: str
    handle: H


@dataclass(frozen=True)
class Closed:
    """연결 종료."""

    connection: str
    cause: CloseCause


@dataclass(frozen=True)
class QrReceived:
    """페어링 QR 코드 수신."""

    connection: str
    code: str


@dataclass(frozen=True)
class FatalFailure:
    """영구 실패."""

    connection: str
    cause: CloseCause
    error: PermanentAuthError


LifecycleEvent = Union[PreDisconnect[Any], Opened[Any], Closed, QrReceived, FatalFailure]

E = TypeVar("E", PreDisconnect, Opened, Closed, QrReceived, FatalFailure)


class LifecycleBus:
    """타입 기반 생명주기 이벤트 버스."""

    def __init__(self, connection: str) -> None:
        self._connection = connection
        self._subscribers: dict[type, list[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        """이벤트 구독.

        같은 콜백의 중복 등록은 무시합니다.
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def unsubscribe(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        """구독 해제."""
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event: LifecycleEvent) -> None:
        """이벤트 발행.

        Args:
            event: 발행할 이벤트
        """
        for callback in list(self._subscribers.get(type(event), [])):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Lifecycle subscriber failed",
                    extra={
                        "connection": self._connection,
                        "event": type(event).__name__,
                    },
                )

    def subscriber_count(self, event_type: type) -> int:
        """구독자 수."""
        return len(self._subscribers.get(event_type, []))
