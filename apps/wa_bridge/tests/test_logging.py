"""Logging 테스트."""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import ecs_logging

from apps.wa_bridge.setup import logging as bridge_logging
from apps.wa_bridge.setup.config import get_settings
from apps.wa_bridge.setup.logging import NOISY_LOGGERS, setup_logging


class TestSetupLogging:
    """setup_logging 함수 테스트."""

    def setup_method(self) -> None:
        get_settings.cache_clear()
        self._factory = logging.getLogRecordFactory()

    def teardown_method(self) -> None:
        """로깅 상태 복원."""
        logging.setLogRecordFactory(self._factory)
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(logging.WARNING)
        get_settings.cache_clear()

    def test_configures_root_logger(self) -> None:
        """ECS 포맷 핸들러 하나."""
        with patch.dict(os.environ, {"WA_BRIDGE_LOG_LEVEL": "DEBUG"}, clear=False):
            setup_logging()

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, ecs_logging.StdlibFormatter)

    def test_adds_service_metadata(self) -> None:
        """LogRecord에 service 속성 추가."""
        env_vars = {
            "WA_BRIDGE_SERVICE_NAME": "wa-bridge-test",
            "WA_BRIDGE_SERVICE_VERSION": "1.2.3",
            "WA_BRIDGE_ENVIRONMENT": "test",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            setup_logging()

        record = logging.getLogger("test").makeRecord(
            "test", logging.INFO, "test.py", 1, "test message", (), None
        )
        assert record.service == {
            "name": "wa-bridge-test",
            "version": "1.2.3",
            "environment": "test",
        }

    def test_silences_connection_libraries(self) -> None:
        """연결 라이브러리 로그 레벨 WARNING."""
        setup_logging()

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_adds_bridge_labels(self) -> None:
        """LogRecord에 큐 / 게이트웨이 라벨 추가."""
        env_vars = {
            "WA_BRIDGE_QUEUE_INCOMING": "in",
            "WA_BRIDGE_QUEUE_OUTGOING": "out",
            "WA_BRIDGE_GATEWAY_URL": "ws://gateway:8080/session",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            setup_logging()

        record = logging.getLogger("test").makeRecord(
            "test", logging.INFO, "test.py", 1, "test message", (), None
        )
        assert record.labels == {
            "queue_incoming": "in",
            "queue_outgoing": "out",
            "gateway_url": "ws://gateway:8080/session",
        }

    def test_repeated_setup_does_not_stack_factories(self) -> None:
        """재호출해도 원본 factory는 레코드당 한 번만 호출."""
        calls: list[str] = []

        def counting_factory(*args, **kwargs) -> logging.LogRecord:
            calls.append(args[0])
            return logging.LogRecord(*args, **kwargs)

        logging.setLogRecordFactory(counting_factory)
        with patch.object(bridge_logging, "_base_record_factory", None):
            setup_logging()
            setup_logging()

            logging.getLogger("test").makeRecord(
                "test", logging.INFO, "test.py", 1, "test message", (), None
            )

        assert calls == ["test"]
