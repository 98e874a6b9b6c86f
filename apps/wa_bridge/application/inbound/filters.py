"""Inbound Filters.

원시 게이트웨이 메시지(WAMessage)의 필터링/텍스트 추출 규칙입니다.

필터는 순서대로 평가되며, 첫 번째로 일치한 규칙의 사유로 메시지를 버립니다.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Mapping

STATUS_BROADCAST_JID = "status@broadcast"
NOTIFY_BATCH_TYPE = "notify"


class DropReason(str, Enum):
    """메시지 폐기 사유."""

    SELF_ECHO = "self-echo"
    NOT_NOTIFY = "not-notify"
    NO_SENDER = "no-sender"
    STATUS_BROADCAST = "status-broadcast"
    SYSTEM_STUB = "system-stub"
    BROADCAST_LIST = "broadcast-list"
    UNPARSEABLE = "unparseable"


def _key(message: Mapping[str, Any]) -> Mapping[str, Any]:
    key = message.get("key")
    return key if isinstance(key, Mapping) else {}


# (사유, 조건) - 순서가 곧 우선순위
_RULES: tuple[tuple[DropReason, Callable[[Mapping[str, Any], str | None], bool]], ...] = (
    (DropReason.SELF_ECHO, lambda m, _: bool(_key(m).get("fromMe"))),
    (DropReason.NOT_NOTIFY, lambda _, batch: batch != NOTIFY_BATCH_TYPE),
    (DropReason.NO_SENDER, lambda m, _: not _key(m).get("remoteJid")),
    (
        DropReason.STATUS_BROADCAST,
        lambda m, _: _key(m).get("remoteJid") == STATUS_BROADCAST_JID,
    ),
    (DropReason.SYSTEM_STUB, lambda m, _: bool(m.get("messageStubType"))),
    (DropReason.BROADCAST_LIST, lambda m, _: bool(m.get("broadcast"))),
)


def evaluate_filters(message: Mapping[str, Any], batch_type: str | None) -> DropReason | None:
    """필터 규칙 평가.

    Args:
        message: 원시 WAMessage
        batch_type: messages.upsert 배치 타입 ("notify", "append" 등)

    Returns:
        첫 번째로 일치한 폐기 사유, 통과 시 None
    """
    for reason, matches in _RULES:
        if matches(message, batch_type):
            return reason
    return None


def _path(content: Mapping[str, Any], *keys: str) -> Any:
    node: Any = content
    for key in keys:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


# 텍스트 후보 - 우선순위 순
_TEXT_CANDIDATES: tuple[tuple[str, ...], ...] = (
    ("conversation",),
    ("extendedTextMessage", "text"),
    ("buttonsResponseMessage", "selectedDisplayText"),
    ("listResponseMessage", "title"),
)


def extract_text(message: Mapping[str, Any]) -> str | None:
    """메시지 텍스트 추출.

    평문 → 확장/인용 텍스트 → 버튼 응답 → 리스트 응답 순서로 시도하며,
    공백이 아닌 첫 번째 후보를 반환합니다.

    Returns:
        추출된 텍스트, 없으면 None
    """
    content = message.get("message")
    if not isinstance(content, Mapping):
        return None

    for path in _TEXT_CANDIDATES:
        candidate = _path(content, *path)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


def normalize_timestamp(value: Any) -> int | None:
    """messageTimestamp 정규화.

    게이트웨이는 숫자, 숫자 문자열, 또는 Long 객체({low, high})로 보냅니다.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return int(value) if value.strip().isdigit() else None
    if isinstance(value, Mapping) and "low" in value:
        low = int(value.get("low") or 0) & 0xFFFFFFFF
        high = int(value.get("high") or 0)
        return (high << 32) | low
    return None
