"""Event Dispatch Registry.

게이트웨이 이벤트 핸들러를 현재 세션 handle에 바인딩/해제합니다.

           Opened(handle)                      PreDisconnect(handle)
gateway ConnectionManager ──▶ bind(handle)  ──▶ unbind()
                                  │
                                  ▼
                event_name → dispatcher → [handler, handler, ...]

- 이벤트 이름당 dispatcher 하나를 handle의 이벤트 테이블에 등록
- 바인딩 상태는 핸들러 단위로 추적 (unbind 없이 bind 두 번 → 중복 등록 없음)
- 핸들러 호출마다 fault boundary (동기 예외 / 코루틴 실패 모두 격리)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Iterable

from apps.wa_bridge.domain.exceptions import HandlerFault
from apps.wa_bridge.infrastructure.connection.lifecycle import Opened, PreDisconnect

if TYPE_CHECKING:
    from apps.wa_bridge.application.common.ports.event_handler import GatewayEventHandler
    from apps.wa_bridge.infrastructure.connection.manager import ConnectionManager
    from apps.wa_bridge.infrastructure.gateway.session import GatewaySession

logger = logging.getLogger(__name__)


class EventDispatchRegistry:
    """게이트웨이 이벤트 디스패치 레지스트리."""

    def __init__(
        self,
        connection: "ConnectionManager[GatewaySession]",
        handlers: Iterable["GatewayEventHandler"],
    ) -> None:
        """Initialize.

        Args:
            connection: 게이트웨이 ConnectionManager
            handlers: 핸들러 집합 (같은 인스턴스는 한 번만 등록)
        """
        self._connection = connection
        self._handlers: list[GatewayEventHandler] = list(dict.fromkeys(handlers))
        self._table: dict[str, list[GatewayEventHandler]] = {}
        for handler in self._handlers:
            self._table.setdefault(handler.event_name, []).append(handler)
        self._dispatchers: dict[str, Callable[[Any], None]] = {
            event_name: partial(self._dispatch, event_name) for event_name in self._table
        }

        self._session: GatewaySession | None = None
        self._registered: set[str] = set()
        self._bound: set[GatewayEventHandler] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._attached = False
        self._faults = 0

    @property
    def event_names(self) -> list[str]:
        """등록된 이벤트 이름."""
        return list(self._table)

    @property
    def is_bound(self) -> bool:
        """핸들러가 세션에 바인딩되어 있는지."""
        return bool(self._bound)

    def attach(self) -> None:
        """게이트웨이 생명주기 이벤트 구독.

        게이트웨이가 이미 열려 있으면 즉시 바인딩합니다.
        """
        if not self._attached:
            self._connection.events.subscribe(Opened, self._on_opened)
            self._connection.events.subscribe(PreDisconnect, self._on_pre_disconnect)
            self._attached = True

        session = self._connection.get_handle()
        if session is not None:
            self.bind(session)

    async def detach(self) -> None:
        """구독 해제 후 바인딩 해제, 진행 중인 핸들러 완료 대기."""
        if self._attached:
            self._connection.events.unsubscribe(Opened, self._on_opened)
            self._connection.events.unsubscribe(PreDisconnect, self._on_pre_disconnect)
            self._attached = False
        self.unbind()

        pending = [task for task in self._tasks if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def bind(self, session: "GatewaySession") -> None:
        """모든 핸들러를 세션에 바인딩.

        이미 바인딩된 핸들러는 건너뜁니다.
        """
        if self._session is not None and self._session is not session:
            # 이전 세션 리스너가 남아있으면 먼저 정리
            self.unbind()

        self._session = session
        newly_bound = 0
        for event_name, handlers in self._table.items():
            if event_name not in self._registered:
                session.ev.on(event_name, self._dispatchers[event_name])
                self._registered.add(event_name)
            for handler in handlers:
                if handler not in self._bound:
                    self._bound.add(handler)
                    newly_bound += 1

        if newly_bound:
            logger.info(
                "Gateway event handlers bound",
                extra={"handlers": newly_bound, "events": self.event_names},
            )

    def unbind(self) -> None:
        """현재 세션에서 모든 핸들러 해제."""
        session = self._session
        if session is not None:
            for event_name in self._registered:
                session.ev.off(event_name, self._dispatchers[event_name])
        if self._bound:
            logger.info(
                "Gateway event handlers unbound",
                extra={"handlers": len(self._bound)},
            )
        self._registered.clear()
        self._bound.clear()
        self._session = None

    @property
    def stats(self) -> dict[str, Any]:
        """통계 반환."""
        return {
            "bound": len(self._bound),
            "in_flight": sum(1 for task in self._tasks if not task.done()),
            "faults": self._faults,
        }

    # ─────────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────────

    def _dispatch(self, event_name: str, payload: Any) -> None:
        for handler in list(self._table[event_name]):
            if handler in self._bound:
                self._invoke(handler, event_name, payload)

    def _invoke(self, handler: "GatewayEventHandler", event_name: str, payload: Any) -> None:
        try:
            result = handler.handle(payload)
        except Exception as e:
            self._fault(handler, event_name, e)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(partial(self._on_task_done, handler, event_name))

    def _on_task_done(
        self,
        handler: "GatewayEventHandler",
        event_name: str,
        task: asyncio.Task[Any],
    ) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._fault(handler, event_name, error)

    def _fault(
        self,
        handler: "GatewayEventHandler",
        event_name: str,
        error: BaseException,
    ) -> None:
        self._faults += 1
        fault = HandlerFault(type(handler).__name__, event_name)
        logger.error(
            fault.message,
            exc_info=(type(error), error, error.__traceback__),
            extra={"handler": fault.handler_name, "event": event_name},
        )

    # ─────────────────────────────────────────────────────────────────────
    # Gateway lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def _on_opened(self, event: "Opened[GatewaySession]") -> None:
        self.bind(event.handle)

    def _on_pre_disconnect(self, event: "PreDisconnect[GatewaySession]") -> None:
        if self._session is None or self._session is event.handle:
            self.unbind()
