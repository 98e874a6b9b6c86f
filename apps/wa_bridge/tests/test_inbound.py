"""Inbound 필터/추출/처리 테스트."""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import AsyncMock

import pytest

from apps.wa_bridge.application.inbound.filters import (
    DropReason,
    evaluate_filters,
    extract_text,
    normalize_timestamp,
)
from apps.wa_bridge.application.inbound.processor import InboundMessageProcessor
from apps.wa_bridge.presentation.gateway.handlers.messages_upsert import (
    MessagesUpsertHandler,
)


class TestEvaluateFilters:
    """필터 규칙 테스트."""

    def test_regular_message_passes(self, sample_wa_message: dict[str, Any]) -> None:
        assert evaluate_filters(sample_wa_message, "notify") is None

    def test_first_matching_rule_wins(self, sample_wa_message: dict[str, Any]) -> None:
        """self-echo와 broadcast 모두 해당 → self-echo."""
        message = copy.deepcopy(sample_wa_message)
        message["key"]["fromMe"] = True
        message["broadcast"] = True

        assert evaluate_filters(message, "notify") is DropReason.SELF_ECHO

    @pytest.mark.parametrize(
        ("mutate", "batch_type", "expected"),
        [
            (lambda m: m["key"].update(fromMe=True), "notify", DropReason.SELF_ECHO),
            (lambda m: None, "append", DropReason.NOT_NOTIFY),
            (lambda m: m["key"].pop("remoteJid"), "notify", DropReason.NO_SENDER),
            (
                lambda m: m["key"].update(remoteJid="status@broadcast"),
                "notify",
                DropReason.STATUS_BROADCAST,
            ),
            (lambda m: m.update(messageStubType=27), "notify", DropReason.SYSTEM_STUB),
            (lambda m: m.update(broadcast=True), "notify", DropReason.BROADCAST_LIST),
        ],
    )
    def test_each_rule(
        self,
        sample_wa_message: dict[str, Any],
        mutate: Any,
        batch_type: str,
        expected: DropReason,
    ) -> None:
        message = copy.deepcopy(sample_wa_message)
        mutate(message)

        assert evaluate_filters(message, batch_type) is expected

    def test_missing_key_is_no_sender(self) -> None:
        """key 자체가 없음 → no-sender."""
        assert evaluate_filters({"message": {}}, "notify") is DropReason.NO_SENDER


class TestExtractText:
    """텍스트 추출 테스트."""

    def test_plain_text_preferred_over_extended(self) -> None:
        """conversation과 extendedText 모두 있으면 conversation."""
        message = {
            "message": {
                "conversation": "plain",
                "extendedTextMessage": {"text": "extended"},
            }
        }

        assert extract_text(message) == "plain"

    def test_blank_candidate_skipped(self) -> None:
        """공백 후보는 건너뜀."""
        message = {
            "message": {
                "conversation": "   ",
                "extendedTextMessage": {"text": "quoted reply"},
            }
        }

        assert extract_text(message) == "quoted reply"

    def test_button_reply(self) -> None:
        message = {"message": {"buttonsResponseMessage": {"selectedDisplayText": "Yes"}}}

        assert extract_text(message) == "Yes"

    def test_list_reply(self) -> None:
        message = {"message": {"listResponseMessage": {"title": "Option 2"}}}

        assert extract_text(message) == "Option 2"

    @pytest.mark.parametrize(
        "message",
        [
            {},
            {"message": None},
            {"message": {"imageMessage": {"url": "https://example.com/a.jpg"}}},
            {"message": {"extendedTextMessage": "not-an-object"}},
        ],
    )
    def test_no_text(self, message: dict[str, Any]) -> None:
        assert extract_text(message) is None


class TestNormalizeTimestamp:
    """messageTimestamp 정규화 테스트."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (1714000000, 1714000000),
            (1714000000.7, 1714000000),
            ("1714000000", 1714000000),
            ({"low": 1714000000, "high": 0, "unsigned": True}, 1714000000),
            ({"low": 0, "high": 1}, 1 << 32),
            (None, None),
            ("abc", None),
            (True, None),
        ],
    )
    def test_values(self, value: Any, expected: int | None) -> None:
        assert normalize_timestamp(value) == expected


class TestInboundMessageProcessor:
    """InboundMessageProcessor 테스트."""

    @pytest.fixture
    def processor(self, mock_publisher: AsyncMock) -> InboundMessageProcessor:
        return InboundMessageProcessor(mock_publisher, "message_received")

    @pytest.mark.asyncio
    async def test_publishes_canonical_message(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """정규화된 메시지를 incoming 큐에 발행."""
        result = await processor.process(sample_wa_message, "notify")

        assert result.published is True
        mock_publisher.publish.assert_awaited_once()
        queue_name, payload = mock_publisher.publish.await_args.args
        assert queue_name == "message_received"
        assert payload == {
            "correlationId": result.correlation_id,
            "externalMessageId": "3EB0C767D26A1D5B",
            "waTimestamp": 1714000000,
            "from": "5511999999999@s.whatsapp.net",
            "pushName": "Maria",
            "text": "Olá, tudo bem?",
        }
        assert result.correlation_id.startswith("wa-in-3EB0C767D26A1D5B-")
        assert len(result.correlation_id.rsplit("-", 1)[1]) == 8

    @pytest.mark.asyncio
    async def test_self_echo_never_published(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """fromMe=true → 발행하지 않음."""
        sample_wa_message["key"]["fromMe"] = True

        result = await processor.process(sample_wa_message, "notify")

        assert result.published is False
        assert result.drop_reason is DropReason.SELF_ECHO
        mock_publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_text_message_unparseable(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """텍스트 없음 → unparseable."""
        sample_wa_message["message"] = {"imageMessage": {}}

        result = await processor.process(sample_wa_message, "notify")

        assert result.drop_reason is DropReason.UNPARSEABLE
        mock_publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_defaults_for_missing_id_and_push_name(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """id/pushName 누락 시 기본값."""
        del sample_wa_message["key"]["id"]
        del sample_wa_message["pushName"]

        result = await processor.process(sample_wa_message, "notify")

        payload = mock_publisher.publish.await_args.args[1]
        assert payload["externalMessageId"] == "unknown-wa-id"
        assert payload["pushName"] == "Unknown"
        assert result.correlation_id.startswith("wa-in-unknown-wa-id-")

    @pytest.mark.asyncio
    async def test_publish_failure_swallowed(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """발행 실패는 로깅 후 무시 (재시도 없음)."""
        mock_publisher.publish.side_effect = ConnectionError("broker down")

        result = await processor.process(sample_wa_message, "notify")

        assert result.published is False
        assert result.error == "broker down"
        assert mock_publisher.publish.await_count == 1
        assert processor.stats == {"publish_failed": 1}

    @pytest.mark.asyncio
    async def test_stats_by_result(
        self,
        processor: InboundMessageProcessor,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """결과별 통계."""
        await processor.process(sample_wa_message, "notify")
        await processor.process(sample_wa_message, "append")
        await processor.process(sample_wa_message, "append")

        assert processor.stats == {"published": 1, "dropped:not-notify": 2}


class TestMessagesUpsertHandler:
    """MessagesUpsertHandler 테스트."""

    @pytest.fixture
    def processor(self, mock_publisher: AsyncMock) -> InboundMessageProcessor:
        return InboundMessageProcessor(mock_publisher, "message_received")

    def test_event_name(self, processor: InboundMessageProcessor) -> None:
        assert MessagesUpsertHandler(processor).event_name == "messages.upsert"

    @pytest.mark.asyncio
    async def test_each_message_processed(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        sample_wa_message: dict[str, Any],
    ) -> None:
        """배치 내 메시지를 각각 처리."""
        own = copy.deepcopy(sample_wa_message)
        own["key"]["fromMe"] = True
        handler = MessagesUpsertHandler(processor)

        results = await handler.handle(
            {"type": "notify", "messages": [sample_wa_message, own, "junk"]}
        )

        assert [r.published for r in results] == [True, False]
        assert mock_publisher.publish.await_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, "text", {"type": "notify"}])
    async def test_malformed_payload_ignored(
        self,
        processor: InboundMessageProcessor,
        mock_publisher: AsyncMock,
        payload: Any,
    ) -> None:
        handler = MessagesUpsertHandler(processor)

        assert await handler.handle(payload) == []
        mock_publisher.publish.assert_not_awaited()
