"""Gateway Event Table.

게이트웨이 세션 handle이 노출하는 이름 기반 이벤트 리스너 테이블입니다.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

CONNECTION_UPDATE = "connection.update"
MESSAGES_UPSERT = "messages.upsert"

Listener = Callable[[Any], None]


class EventTable:
    """이벤트 이름 → 리스너 목록."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event_name: str, listener: Listener) -> None:
        """리스너 등록."""
        self._listeners.setdefault(event_name, []).append(listener)

    def off(self, event_name: str, listener: Listener) -> None:
        """리스너 해제."""
        listeners = self._listeners.get(event_name, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(event_name, None)

    def listener_count(self, event_name: str) -> int:
        """등록된 리스너 수."""
        return len(self._listeners.get(event_name, []))

    def emit(self, event_name: str, payload: Any) -> None:
        """이벤트 전달."""
        for listener in list(self._listeners.get(event_name, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception("Gateway listener failed", extra={"event": event_name})
