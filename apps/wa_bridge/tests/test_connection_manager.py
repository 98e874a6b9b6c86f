"""ConnectionManager 테스트."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from apps.wa_bridge.domain.connection import ConnectionState, ReconnectPolicy
from apps.wa_bridge.domain.exceptions import (
    DependencyUnavailableError,
    PermanentAuthError,
)
from apps.wa_bridge.infrastructure.connection.lifecycle import (
    Closed,
    FatalFailure,
    Opened,
    PreDisconnect,
    QrReceived,
)
from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager


def _record(manager: ConnectionManager[Any], *event_types: type) -> list[Any]:
    events: list[Any] = []
    for event_type in event_types:
        manager.events.subscribe(event_type, events.append)
    return events


class TestConnect:
    """connect() 테스트."""

    @pytest.mark.asyncio
    async def test_start_opens_connection(self, connector, slow_policy) -> None:
        """연결 성공 시 OPEN + Opened 발행."""
        manager = ConnectionManager(connector, policy=slow_policy)
        events = _record(manager, Opened)

        await manager.start()

        assert manager.state is ConnectionState.OPEN
        assert manager.is_connected() is True
        assert manager.get_handle() is connector.opened[0]
        assert events == [Opened("fake", connector.opened[0])]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_ready_reported_after_open_returns(self, connector, slow_policy) -> None:
        """게이트웨이형: open() 이후 ready 보고 시 OPEN."""
        connector.ready_on_open = False
        manager = ConnectionManager(connector, policy=slow_policy)

        await manager.start()

        assert manager.state is ConnectionState.CONNECTING
        assert manager.is_connected() is False
        assert manager.get_handle() is None

        connector.ready()

        assert manager.state is ConnectionState.OPEN
        assert manager.get_handle() is connector.opened[0]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_connect_twice_while_connecting_opens_once(
        self, connector, slow_policy
    ) -> None:
        """Single-flight: CONNECTING 중 connect() 재호출은 무시."""
        connector.open_gate = asyncio.Event()
        manager = ConnectionManager(connector, policy=slow_policy)

        first = asyncio.create_task(manager.connect())
        await asyncio.sleep(0)
        assert manager.state is ConnectionState.CONNECTING

        await manager.connect()
        connector.open_gate.set()
        await first

        assert connector.open_calls == 1
        assert manager.state is ConnectionState.OPEN
        await manager.stop()

    @pytest.mark.asyncio
    async def test_open_failure_schedules_reconnect(self, connector, slow_policy) -> None:
        """open 실패 → CLOSED, attempt 증가, 재연결 예약."""
        connector.fail_next = 1
        manager = ConnectionManager(connector, policy=slow_policy)

        await manager.start()

        assert manager.state is ConnectionState.CLOSED
        assert manager.policy.attempt == 1
        assert manager.reconnect_pending is True
        await manager.stop()

    @pytest.mark.asyncio
    async def test_reconnect_fires_and_resets_attempt(self, connector, fast_policy) -> None:
        """재연결 타이머 발화 → 연결 성공 → attempt 리셋."""
        connector.fail_next = 2
        manager = ConnectionManager(connector, policy=fast_policy)

        await manager.start()
        await asyncio.sleep(0.2)

        assert connector.open_calls == 3
        assert manager.state is ConnectionState.OPEN
        assert manager.policy.attempt == 0
        assert manager.reconnect_pending is False
        await manager.stop()

    @pytest.mark.asyncio
    async def test_reconnect_replaces_previous_handle(self, connector, slow_policy) -> None:
        """수동 재연결 시 PreDisconnect 발행 후 이전 handle 정리."""
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        first = connector.opened[0]
        events = _record(manager, PreDisconnect)

        await manager.connect()

        assert events == [PreDisconnect("fake", first)]
        assert first.closed is True
        assert manager.get_handle() is connector.opened[1]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_close_from_stale_handle_ignored(self, connector, slow_policy) -> None:
        """교체된 handle의 close 보고는 무시."""
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        await manager.connect()

        connector.drop(index=0)

        assert manager.state is ConnectionState.OPEN
        assert manager.reconnect_pending is False
        assert manager.get_handle() is connector.opened[1]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_require_handle_raises_when_disconnected(
        self, connector, slow_policy
    ) -> None:
        """연결 없음 → DependencyUnavailableError."""
        manager = ConnectionManager(connector, policy=slow_policy)

        with pytest.raises(DependencyUnavailableError, match="fake connection not available"):
            manager.require_handle()


class TestScheduleReconnect:
    """schedule_reconnect() 테스트."""

    @pytest.mark.asyncio
    async def test_single_pending_timer(self, connector, slow_policy) -> None:
        """대기 중 타이머가 있으면 새로 예약하지 않음."""
        connector.fail_next = 1
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        timer = manager._reconnect_timer

        manager.schedule_reconnect()
        manager.schedule_reconnect()

        assert manager._reconnect_timer is timer
        await manager.stop()

    @pytest.mark.asyncio
    async def test_noop_while_connecting(self, connector, slow_policy) -> None:
        """연결 시도 중에는 예약하지 않음."""
        connector.open_gate = asyncio.Event()
        manager = ConnectionManager(connector, policy=slow_policy)
        task = asyncio.create_task(manager.connect())
        await asyncio.sleep(0)

        manager.schedule_reconnect()

        assert manager.reconnect_pending is False
        connector.open_gate.set()
        await task
        await manager.stop()

    @pytest.mark.asyncio
    async def test_manual_connect_cancels_pending_timer(
        self, connector, slow_policy
    ) -> None:
        """수동 connect()는 대기 중 타이머를 취소."""
        connector.fail_next = 1
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        assert manager.reconnect_pending is True

        await manager.connect()

        assert manager.reconnect_pending is False
        assert manager.state is ConnectionState.OPEN
        await manager.stop()


class TestCloseHandling:
    """close 처리 테스트."""

    @pytest.mark.asyncio
    async def test_transient_close_schedules_reconnect(
        self, connector, slow_policy
    ) -> None:
        """일시적 close → PreDisconnect, Closed, CLOSED, 재연결 예약."""
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        events = _record(manager, PreDisconnect, Closed)

        handle = connector.drop()

        assert events[0] == PreDisconnect("fake", handle)
        assert isinstance(events[1], Closed)
        assert events[1].cause.permanent is False
        assert manager.state is ConnectionState.CLOSED
        assert manager.policy.attempt == 1
        assert manager.reconnect_pending is True
        assert manager.get_handle() is None
        await manager.stop()

    @pytest.mark.asyncio
    async def test_logged_out_fails_permanently(self, connector, fast_policy) -> None:
        """logged out (401) → FAILED_PERMANENTLY, 재연결 타이머 없음."""
        manager = ConnectionManager(connector, policy=fast_policy)
        await manager.start()
        fatal = _record(manager, FatalFailure)

        connector.drop(status_code=401)
        await asyncio.sleep(0.1)

        assert manager.state is ConnectionState.FAILED_PERMANENTLY
        assert manager.reconnect_pending is False
        assert connector.open_calls == 1
        assert len(fatal) == 1
        assert fatal[0].cause.status_code == 401
        assert isinstance(fatal[0].error, PermanentAuthError)
        await manager.stop()

    @pytest.mark.asyncio
    async def test_manual_connect_after_permanent_failure(
        self, connector, slow_policy
    ) -> None:
        """영구 실패 후 수동 connect()는 허용 (운영자 리셋)."""
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        connector.drop(status_code=401)

        await manager.connect()

        assert manager.state is ConnectionState.OPEN
        assert connector.open_calls == 2
        await manager.stop()

    @pytest.mark.asyncio
    async def test_connect_timeout_aborts_and_reconnects(
        self, connector, slow_policy
    ) -> None:
        """연결 타임아웃 → 강제 종료 → 동일한 close 경로."""
        connector.ready_on_open = False
        manager = ConnectionManager(connector, policy=slow_policy, connect_timeout=0.01)
        closed = _record(manager, Closed)

        await manager.start()
        await asyncio.sleep(0.05)

        assert connector.aborted[0][1] == "Connection Timeout"
        assert len(closed) == 1
        assert manager.state is ConnectionState.CLOSED
        assert manager.policy.attempt == 1
        assert manager.reconnect_pending is True
        await manager.stop()

    @pytest.mark.asyncio
    async def test_hung_open_times_out_and_recovers(
        self, connector, slow_policy
    ) -> None:
        """open()이 반환되지 않음 → 타임아웃 → CLOSED, 재연결 예약, 이후 연결 가능."""
        connector.open_gate = asyncio.Event()
        manager = ConnectionManager(connector, policy=slow_policy, connect_timeout=0.05)

        await asyncio.wait_for(manager.start(), timeout=1.0)

        assert manager.state is ConnectionState.CLOSED
        assert manager.policy.attempt == 1
        assert manager.reconnect_pending is True

        connector.open_gate = None
        await manager.connect()

        assert manager.state is ConnectionState.OPEN
        assert connector.open_calls == 2
        await manager.stop()

    @pytest.mark.asyncio
    async def test_ready_before_hung_open_is_aborted(self, connector, slow_policy) -> None:
        """ready 보고 후 open()이 멈춤 → 타임아웃 시 handle 강제 종료."""
        open_and_ready = connector.open

        async def stall_after_ready(listener: Any) -> Any:
            handle = await open_and_ready(listener)
            await asyncio.Event().wait()
            return handle

        connector.open = stall_after_ready
        manager = ConnectionManager(connector, policy=slow_policy, connect_timeout=0.05)
        events = _record(manager, Opened, PreDisconnect)

        await asyncio.wait_for(manager.start(), timeout=1.0)

        handle = connector.opened[0]
        assert events == [Opened("fake", handle), PreDisconnect("fake", handle)]
        assert connector.aborted == [(handle, "Connection Timeout")]
        assert manager.state is ConnectionState.CLOSED
        assert manager.get_handle() is None
        assert manager.reconnect_pending is True
        await manager.stop()

    @pytest.mark.asyncio
    async def test_qr_forwarded(self, connector, slow_policy) -> None:
        """QR 코드 수신 이벤트 발행."""
        connector.ready_on_open = False
        manager = ConnectionManager(connector, policy=slow_policy)
        events = _record(manager, QrReceived)
        await manager.start()

        connector.listeners[0].on_qr("2@abc,def")

        assert events == [QrReceived("fake", "2@abc,def")]
        await manager.stop()


class TestStop:
    """stop() 테스트."""

    @pytest.mark.asyncio
    async def test_stop_closes_handle_and_cancels_timer(
        self, connector, slow_policy
    ) -> None:
        """종료 시 PreDisconnect 발행, handle 정리, CLOSED."""
        manager = ConnectionManager(connector, policy=slow_policy)
        await manager.start()
        events = _record(manager, PreDisconnect)

        await manager.stop()

        assert events == [PreDisconnect("fake", connector.opened[0])]
        assert connector.opened[0].closed is True
        assert manager.state is ConnectionState.CLOSED
        assert manager.reconnect_pending is False

    @pytest.mark.asyncio
    async def test_no_reconnect_after_stop(self, connector, fast_policy) -> None:
        """종료 후 close 보고/connect()는 무시."""
        manager = ConnectionManager(connector, policy=fast_policy)
        await manager.start()
        await manager.stop()

        connector.listeners[0].on_close(connector.opened[0], None)
        await manager.connect()
        await asyncio.sleep(0.05)

        assert connector.open_calls == 1
        assert manager.reconnect_pending is False

    @pytest.mark.asyncio
    async def test_stats(self, connector) -> None:
        """통계 반환."""
        manager = ConnectionManager(connector, policy=ReconnectPolicy())
        await manager.start()

        assert manager.stats == {
            "state": "open",
            "attempt": 0,
            "open_calls": 1,
            "reconnect_pending": False,
        }
        await manager.stop()
