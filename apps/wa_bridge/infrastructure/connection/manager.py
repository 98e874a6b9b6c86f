"""Connection Manager.

연결 하나의 생명주기를 소유하는 제네릭 매니저입니다.
게이트웨이 세션과 브로커 연결에 각각 하나씩 인스턴스화됩니다.

책임:
1. 단일 handle 소유 (교체 전 PreDisconnect 발행)
2. 실패 감지 및 분류 (permanent / transient)
3. Exponential Backoff 재연결 (single-flight)
4. 생명주기 이벤트 발행 (LifecycleBus)

Single-flight:
- 진행 중인 open()은 최대 하나
- 대기 중인 재연결 타이머는 최대 하나
- 타이머 콜백은 connect() 호출 전에 타이머 필드를 먼저 비움

Stale 이벤트:
- 연결 시도마다 generation 번호를 부여하고,
  현재 generation이 아닌 handle의 ready/close 보고는 무시합니다.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Generic, TypeVar

from apps.wa_bridge.domain.connection import (
    ConnectionState,
    DisconnectInfo,
    ReconnectPolicy,
)
from apps.wa_bridge.domain.exceptions import (
    DependencyUnavailableError,
    PermanentAuthError,
)
from apps.wa_bridge.infrastructure.connection.connector import Connector
from apps.wa_bridge.infrastructure.connection.lifecycle import (
    Closed,
    FatalFailure,
    LifecycleBus,
    Opened,
    PreDisconnect,
    QrReceived,
)
from apps.wa_bridge.metrics import CONNECTION_UP, RECONNECTS_SCHEDULED

logger = logging.getLogger(__name__)

H = TypeVar("H")


class _AttemptListener(Generic[H]):
    """연결 시도 하나에 묶인 listener."""

    def __init__(self, manager: "ConnectionManager[H]", generation: int) -> None:
        self._manager = manager
        self._generation = generation

    def on_ready(self, handle: H) -> None:
        self._manager._handle_ready(self._generation, handle)

    def on_close(self, handle: H, info: DisconnectInfo) -> None:
        self._manager._handle_close(self._generation, handle, info)

    def on_qr(self, code: str) -> None:
        self._manager._handle_qr(self._generation, code)


class ConnectionManager(Generic[H]):
    """연결 생명주기 매니저.

    Example:
        >>> manager = ConnectionManager(RabbitMQConnector(url), policy=ReconnectPolicy())
        >>> manager.events.subscribe(Opened, on_open)
        >>> await manager.start()
    """

    def __init__(
        self,
        connector: Connector[H],
        *,
        policy: ReconnectPolicy | None = None,
        connect_timeout: float | None = 90.0,
    ) -> None:
        """Initialize.

        Args:
            connector: 전송 계층 커넥터
            policy: 재연결 정책 (None이면 기본값)
            connect_timeout: 연결 시도 타임아웃 (초, None이면 비활성)
        """
        self._connector = connector
        self._name = connector.name
        self._policy = policy or ReconnectPolicy()
        self._connect_timeout = connect_timeout
        self.events = LifecycleBus(self._name)

        self._state = ConnectionState.IDLE
        self._handle: H | None = None
        self._generation = 0
        self._opening = False
        self._stopping = False
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._connect_timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._open_calls = 0

    @property
    def name(self) -> str:
        """연결 이름."""
        return self._name

    @property
    def state(self) -> ConnectionState:
        """현재 상태."""
        return self._state

    @property
    def policy(self) -> ReconnectPolicy:
        """재연결 정책."""
        return self._policy

    @property
    def reconnect_pending(self) -> bool:
        """재연결 타이머 대기 여부."""
        return self._reconnect_timer is not None

    def is_connected(self) -> bool:
        """OPEN 상태이며 handle이 살아있는지."""
        handle = self._handle
        return (
            self._state is ConnectionState.OPEN
            and handle is not None
            and self._connector.is_alive(handle)
        )

    def get_handle(self) -> H | None:
        """현재 handle, 연결되지 않았으면 None.

        호출자는 suspend 지점 전에 반환값을 지역 변수로 잡아두어야 합니다.
        """
        if not self.is_connected():
            return None
        return self._handle

    def require_handle(self) -> H:
        """현재 handle.

        Raises:
            DependencyUnavailableError: 연결되지 않은 경우
        """
        handle = self.get_handle()
        if handle is None:
            raise DependencyUnavailableError(self._name)
        return handle

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """첫 연결 시작."""
        self._stopping = False
        await self.connect()

    async def connect(self) -> None:
        """연결 시도.

        이미 CONNECTING이거나 open()이 진행 중이면 아무것도 하지 않습니다.
        """
        if self._stopping:
            logger.debug("Connect skipped, manager stopping", extra={"connection": self._name})
            return
        if self._state is ConnectionState.CONNECTING or self._opening:
            logger.warning(
                "Connection attempt already in progress",
                extra={"connection": self._name},
            )
            return

        self._transition(ConnectionState.CONNECTING)
        self._cancel_connect_timeout()
        self._cancel_reconnect_timer()
        self._generation += 1
        generation = self._generation

        logger.info(
            "Attempting to connect",
            extra={"connection": self._name, "attempt": self._policy.attempt + 1},
        )

        previous, self._handle = self._handle, None
        if previous is not None:
            self.events.publish(PreDisconnect(self._name, previous))
            await self._teardown(previous)
            if generation != self._generation:
                return

        self._opening = True
        self._open_calls += 1
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        try:
            # 타임아웃은 open() 자체(핸드셰이크 포함)부터 적용
            handle = await asyncio.wait_for(
                self._connector.open(_AttemptListener(self, generation)),
                timeout=self._connect_timeout,
            )
        except Exception as e:
            self._opening = False
            if generation != self._generation:
                if self._state is ConnectionState.CLOSED:
                    self.schedule_reconnect()
                return
            if isinstance(e, asyncio.TimeoutError):
                self._expire_open()
            else:
                logger.error(
                    "Connection attempt failed",
                    extra={
                        "connection": self._name,
                        "attempt": self._policy.attempt + 1,
                        "error": str(e),
                    },
                )
            self._transition(ConnectionState.CLOSED)
            self._policy.record_failure()
            self.schedule_reconnect()
            return
        finally:
            self._opening = False

        if generation != self._generation:
            # open() 대기 중 close/stop으로 무효화됨
            self._connector.abort(handle, "superseded")
            if self._state is ConnectionState.CLOSED:
                self.schedule_reconnect()
            return

        if self._state is ConnectionState.OPEN:
            # open() 반환 전에 ready 보고됨
            return

        self._handle = handle
        remaining = None
        if self._connect_timeout is not None:
            remaining = max(self._connect_timeout - (loop.time() - started_at), 0.0)
        self._arm_connect_timeout(generation, remaining)

    def schedule_reconnect(self) -> None:
        """재연결 타이머 예약.

        타이머가 이미 있거나 연결 시도가 진행 중이면 아무것도 하지 않습니다.
        """
        if self._stopping:
            return
        if (
            self._reconnect_timer is not None
            or self._state is ConnectionState.CONNECTING
            or self._opening
        ):
            logger.debug(
                "Reconnect already scheduled or in progress",
                extra={"connection": self._name},
            )
            return

        delay = self._policy.delay()
        logger.info(
            "Scheduling reconnect",
            extra={
                "connection": self._name,
                "attempt": self._policy.attempt + 1,
                "delay_seconds": delay,
            },
        )
        RECONNECTS_SCHEDULED.labels(connection=self._name).inc()
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(delay, self._fire_reconnect)

    async def stop(self) -> None:
        """종료.

        재연결 스케줄링을 멈추고, 리스너를 떼어낸 뒤 handle을 닫습니다.
        """
        self._stopping = True
        self._generation += 1
        self._cancel_reconnect_timer()
        self._cancel_connect_timeout()

        handle, self._handle = self._handle, None
        if self._state is not ConnectionState.IDLE:
            self._transition(ConnectionState.CLOSING)
        if handle is not None:
            self.events.publish(PreDisconnect(self._name, handle))
            await self._teardown(handle)

        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._transition(ConnectionState.CLOSED)
        logger.info("Connection stopped", extra={"connection": self._name})

    @property
    def stats(self) -> dict[str, Any]:
        """통계 반환."""
        return {
            "state": self._state.value,
            "attempt": self._policy.attempt,
            "open_calls": self._open_calls,
            "reconnect_pending": self.reconnect_pending,
        }

    # ─────────────────────────────────────────────────────────────────────
    # Listener callbacks
    # ─────────────────────────────────────────────────────────────────────

    def _handle_ready(self, generation: int, handle: H) -> None:
        if generation != self._generation or self._stopping:
            logger.debug("Ignoring ready from stale handle", extra={"connection": self._name})
            return
        if self._state is not ConnectionState.CONNECTING:
            return

        self._cancel_connect_timeout()
        self._handle = handle
        self._policy.reset()
        self._transition(ConnectionState.OPEN)
        logger.info("Connection opened", extra={"connection": self._name})
        self.events.publish(Opened(self._name, handle))

    def _handle_close(self, generation: int, handle: H, info: DisconnectInfo) -> None:
        if generation != self._generation or self._stopping:
            logger.debug("Ignoring close from stale handle", extra={"connection": self._name})
            return

        # 이후 같은 handle의 보고는 stale
        self._generation += 1
        self._cancel_connect_timeout()
        lost = self._handle if self._handle is not None else handle
        self._handle = None
        cause = self._connector.classify(info)

        self.events.publish(PreDisconnect(self._name, lost))

        if cause.permanent:
            self._transition(ConnectionState.FAILED_PERMANENTLY)
            logger.critical(
                "Connection closed permanently, manual intervention required",
                extra={
                    "connection": self._name,
                    "reason": cause.reason,
                    "status_code": cause.status_code,
                },
            )
            self.events.publish(Closed(self._name, cause))
            self.events.publish(
                FatalFailure(
                    self._name,
                    cause,
                    PermanentAuthError(f"{self._name} session ended: {cause.reason}"),
                )
            )
            return

        logger.error(
            "Connection closed",
            extra={
                "connection": self._name,
                "reason": cause.reason,
                "status_code": cause.status_code,
            },
        )
        self._transition(ConnectionState.CLOSED)
        self.events.publish(Closed(self._name, cause))
        self._policy.record_failure()
        self.schedule_reconnect()

    def _handle_qr(self, generation: int, code: str) -> None:
        if generation != self._generation:
            return
        logger.info("QR code received, scan to pair", extra={"connection": self._name})
        self.events.publish(QrReceived(self._name, code))

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _transition(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        CONNECTION_UP.labels(connection=self._name).set(
            1 if new_state is ConnectionState.OPEN else 0
        )
        logger.debug(
            "Connection state changed",
            extra={
                "connection": self._name,
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )

    async def _teardown(self, handle: H) -> None:
        try:
            await self._connector.close(handle)
        except Exception as e:
            logger.warning(
                "Graceful close failed, forcing close",
                extra={"connection": self._name, "error": str(e)},
            )
            self._connector.abort(handle, "teardown")

    def _arm_connect_timeout(self, generation: int, timeout: float | None) -> None:
        if timeout is None:
            return
        loop = asyncio.get_running_loop()
        self._connect_timer = loop.call_later(timeout, self._on_connect_timeout, generation)

    def _expire_open(self) -> None:
        """open()이 타임아웃 내에 반환되지 않음.

        취소된 시도의 이후 보고는 stale로 처리하고,
        반환 전에 ready가 보고된 handle이 있으면 강제 종료합니다.
        """
        logger.warning(
            "Connection attempt timed out",
            extra={
                "connection": self._name,
                "attempt": self._policy.attempt + 1,
                "timeout_seconds": self._connect_timeout,
                "phase": "open",
            },
        )
        self._generation += 1
        late, self._handle = self._handle, None
        if late is not None:
            self.events.publish(PreDisconnect(self._name, late))
            self._connector.abort(late, "Connection Timeout")

    def _on_connect_timeout(self, generation: int) -> None:
        self._connect_timer = None
        handle = self._handle
        if (
            generation != self._generation
            or self._state is not ConnectionState.CONNECTING
            or handle is None
        ):
            return
        logger.warning(
            "Connection attempt timed out",
            extra={
                "connection": self._name,
                "attempt": self._policy.attempt + 1,
                "timeout_seconds": self._connect_timeout,
            },
        )
        # close 경로는 connector가 listener.on_close()로 보고
        self._connector.abort(handle, "Connection Timeout")

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        self._spawn(self.connect())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _cancel_connect_timeout(self) -> None:
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None
