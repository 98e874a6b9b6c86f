"""Gateway Session.

WhatsApp 프로토콜 사이드카와의 WebSocket 세션 handle입니다.

Wire format (JSON text frame):
    server → bridge  {"event": "connection.update", "data": {...}}
                     {"event": "messages.upsert", "data": {"type": "notify", "messages": [...]}}
                     {"id": "7", "ok": true, "result": {...}}
    bridge → server  {"id": "7", "method": "sendMessage",
                      "params": {"jid": "...", "content": {"text": "..."}}}

세션 종료는 원인과 무관하게 listener.on_close()로 정확히 한 번 보고됩니다.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import connect as _ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from apps.wa_bridge.domain.connection import DisconnectInfo
from apps.wa_bridge.domain.exceptions import (
    DeliveryFailure,
    DependencyUnavailableError,
    TransientConnectionError,
)
from apps.wa_bridge.infrastructure.gateway.events import CONNECTION_UPDATE, EventTable

if TYPE_CHECKING:
    from apps.wa_bridge.infrastructure.connection.connector import ConnectionListener

logger = logging.getLogger(__name__)

LOGGED_OUT_STATUS = 401
LOGGED_OUT_CLOSE_CODE = 4401


async def websockets_connect(url: str, **kwargs: Any) -> Any:
    """Connect wrapper for testability."""
    return await _ws_connect(url, **kwargs)


class GatewaySession:
    """게이트웨이 세션 handle.

    Attributes:
        ev: 이벤트 리스너 테이블 (EventDispatchRegistry가 바인딩)
        user_id: 연결된 계정 JID (open 이후)
    """

    def __init__(
        self,
        url: str,
        listener: "ConnectionListener[GatewaySession]",
        *,
        token: str | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        self.ev = EventTable()
        self.user_id: str | None = None
        self._url = url
        self._listener = listener
        self._token = token
        self._request_timeout = request_timeout
        self._ws: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._closer: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._sequence = 0
        self._ready = False
        self._closed = False
        self._last_disconnect: DisconnectInfo | None = None

    @property
    def is_open(self) -> bool:
        """세션 사용 가능 여부."""
        return self._ready and not self._closed

    async def start(self) -> None:
        """WebSocket 연결 및 수신 루프 시작.

        Raises:
            TransientConnectionError: 연결 실패
        """
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        try:
            self._ws = await websockets_connect(self._url, additional_headers=headers)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransientConnectionError(f"Gateway connect failed: {e}") from e

        self._reader = asyncio.create_task(self._read_loop())
        logger.info("Gateway socket connected", extra={"url": self._url})

    async def send_message(self, jid: str, text: str) -> dict[str, Any]:
        """텍스트 메시지 전송.

        Raises:
            DependencyUnavailableError: 세션이 열려있지 않음
            DeliveryFailure: 게이트웨이가 전송을 거부함
        """
        if not self.is_open:
            raise DependencyUnavailableError("whatsapp")
        return await self._request("sendMessage", {"jid": jid, "content": {"text": text}})

    async def close(self) -> None:
        """Graceful close."""
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
        self._report_close(DisconnectInfo(error="closed by bridge"))

    def end(self, reason: str | None = None) -> None:
        """강제 종료.

        close 보고 후 transport를 백그라운드에서 닫습니다.
        """
        self._report_close(DisconnectInfo(error=reason or "ended"))
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
        if self._ws is not None and self._closer is None:
            self._closer = asyncio.ensure_future(self._ws.close())

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if self._ws is None or self._closed:
            raise DependencyUnavailableError("whatsapp")

        self._sequence += 1
        request_id = str(self._sequence)
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(
                json.dumps({"id": request_id, "method": method, "params": params})
            )
            response = await asyncio.wait_for(future, timeout=self._request_timeout)
        finally:
            self._pending.pop(request_id, None)

        if not response.get("ok"):
            raise DeliveryFailure(str(response.get("error") or f"{method} rejected"))
        result = response.get("result")
        return result if isinstance(result, dict) else {}

    async def _read_loop(self) -> None:
        info: DisconnectInfo | None = None
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            info = self._info_from_close(getattr(e.rcvd, "code", None), getattr(e.rcvd, "reason", None))
        except Exception as e:
            logger.exception("Gateway read loop failed")
            info = DisconnectInfo(error=str(e))
        finally:
            if info is None:
                info = self._info_from_close(
                    getattr(self._ws, "close_code", None),
                    getattr(self._ws, "close_reason", None),
                )
            self._report_close(info)

    def _info_from_close(self, code: int | None, reason: str | None) -> DisconnectInfo:
        if self._last_disconnect is not None:
            return self._last_disconnect
        if code == LOGGED_OUT_CLOSE_CODE:
            return DisconnectInfo(status_code=LOGGED_OUT_STATUS, error=reason or "logged out")
        return DisconnectInfo(error=f"socket closed ({code}): {reason or ''}".strip())

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Received invalid JSON from gateway")
            return
        if not isinstance(frame, dict):
            return

        if "id" in frame and "ok" in frame:
            future = self._pending.get(str(frame["id"]))
            if future is not None and not future.done():
                future.set_result(frame)
            return

        event_name = frame.get("event")
        if not isinstance(event_name, str):
            logger.debug("Ignoring gateway frame without event name")
            return

        data = frame.get("data")
        if event_name != CONNECTION_UPDATE or not isinstance(data, dict):
            self.ev.emit(event_name, data)
        elif data.get("connection") == "open":
            # ready 보고(→ registry bind) 이후 전달
            self._on_connection_update(data)
            self.ev.emit(event_name, data)
        else:
            # close 시 registry가 unbind하기 전에 전달
            self.ev.emit(event_name, data)
            self._on_connection_update(data)

    def _on_connection_update(self, update: dict[str, Any]) -> None:
        qr = update.get("qr")
        if isinstance(qr, str) and qr:
            self._listener.on_qr(qr)

        connection = update.get("connection")
        if connection == "open" and not self._closed:
            self._ready = True
            user = update.get("user")
            self.user_id = user.get("id") if isinstance(user, dict) else None
            self._listener.on_ready(self)
        elif connection == "close":
            last = update.get("lastDisconnect")
            last = last if isinstance(last, dict) else {}
            status_code = last.get("statusCode")
            self._last_disconnect = DisconnectInfo(
                status_code=status_code if isinstance(status_code, int) else None,
                error=str(last.get("error")) if last.get("error") else None,
            )
            self.end(self._last_disconnect.error)

    def _report_close(self, info: DisconnectInfo) -> None:
        if self._closed:
            return
        self._closed = True
        self._ready = False
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionError("Gateway session closed"))
        self._listener.on_close(self, self._last_disconnect or info)
