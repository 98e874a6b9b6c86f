"""wa_bridge 테스트 공통 Fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent.parent.parent
sys.path.insert(0, str(project_root))

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from apps.wa_bridge.domain.connection import CloseCause, DisconnectInfo, ReconnectPolicy
from apps.wa_bridge.domain.exceptions import TransientConnectionError
from apps.wa_bridge.infrastructure.gateway.events import EventTable


class FakeHandle:
    """테스트용 연결 handle."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.alive = True
        self.closed = False
        self.ev = EventTable()

    def __repr__(self) -> str:
        return f"FakeHandle({self.number})"


class FakeConnector:
    """테스트용 Connector.

    - ready_on_open: open() 반환 전에 on_ready 보고 (브로커형)
    - fail_next: 다음 N번의 open() 실패
    - open_gate: 설정 시 open()이 gate를 기다림
    """

    name = "fake"

    def __init__(self, *, ready_on_open: bool = True) -> None:
        self.ready_on_open = ready_on_open
        self.fail_next = 0
        self.open_gate: asyncio.Event | None = None
        self.open_calls = 0
        self.opened: list[FakeHandle] = []
        self.listeners: list[Any] = []
        self.aborted: list[tuple[FakeHandle, str]] = []

    async def open(self, listener: Any) -> FakeHandle:
        self.open_calls += 1
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.fail_next:
            self.fail_next -= 1
            raise TransientConnectionError("connection refused")

        handle = FakeHandle(len(self.opened))
        self.opened.append(handle)
        self.listeners.append(listener)
        if self.ready_on_open:
            listener.on_ready(handle)
        return handle

    async def close(self, handle: FakeHandle) -> None:
        handle.alive = False
        handle.closed = True

    def abort(self, handle: FakeHandle, reason: str) -> None:
        self.aborted.append((handle, reason))
        if not handle.alive:
            return
        handle.alive = False
        self._listener_for(handle).on_close(handle, DisconnectInfo(error=reason))

    def is_alive(self, handle: FakeHandle) -> bool:
        return handle.alive

    def classify(self, info: DisconnectInfo) -> CloseCause:
        if info.status_code == 401:
            return CloseCause.fatal("logged_out", 401)
        return CloseCause.transient(info.error or "unknown", info.status_code)

    # 테스트 헬퍼
    def ready(self, index: int = -1) -> None:
        """handle 준비 완료 보고."""
        handle = self.opened[index]
        self.listeners[index].on_ready(handle)

    def drop(self, index: int = -1, status_code: int | None = None) -> FakeHandle:
        """연결 끊김 보고."""
        handle = self.opened[index]
        handle.alive = False
        self.listeners[index].on_close(
            handle, DisconnectInfo(status_code=status_code, error="connection lost")
        )
        return handle

    def _listener_for(self, handle: FakeHandle) -> Any:
        return self.listeners[self.opened.index(handle)]


@pytest.fixture
def connector() -> FakeConnector:
    """브로커형 FakeConnector (open 즉시 ready)."""
    return FakeConnector()


@pytest.fixture
def slow_policy() -> ReconnectPolicy:
    """테스트 중 타이머가 발화하지 않는 정책."""
    return ReconnectPolicy(initial_delay=60.0, max_delay=600.0, factor=2.0)


@pytest.fixture
def fast_policy() -> ReconnectPolicy:
    """빠르게 재연결하는 정책."""
    return ReconnectPolicy(initial_delay=0.01, max_delay=0.05, factor=2.0)


@pytest.fixture
def mock_publisher() -> AsyncMock:
    """Mock MessagePublisher."""
    publisher = AsyncMock()
    publisher.publish = AsyncMock()
    return publisher


@pytest.fixture
def mock_sender() -> MagicMock:
    """Mock MessageSender (연결됨, 전송 성공)."""
    sender = MagicMock()
    sender.is_connected = MagicMock(return_value=True)
    sender.format_recipient = MagicMock(
        side_effect=lambda to: to if "@" in to else f"{to}@s.whatsapp.net"
    )
    sender.send = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def sample_wa_message() -> dict[str, Any]:
    """게이트웨이 수신 메시지 샘플 (WAMessage)."""
    return {
        "key": {
            "remoteJid": "5511999999999@s.whatsapp.net",
            "fromMe": False,
            "id": "3EB0C767D26A1D5B",
        },
        "pushName": "Maria",
        "messageTimestamp": 1714000000,
        "message": {"conversation": "Olá, tudo bem?"},
    }
