"""Logging Configuration.

ECS 호환 JSON 로깅 설정입니다.

모든 로그에 붙는 메타데이터:
- service: 이름 / 버전 / 환경
- labels: 이 브리지 인스턴스가 잇는 큐와 게이트웨이
  (프로세스당 게이트웨이 계정 하나이므로 인스턴스 구분용)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import ecs_logging

from apps.wa_bridge.setup.config import Settings, get_settings

# 연결 라이브러리는 자체 재연결 로그가 많음
NOISY_LOGGERS = ("aio_pika", "aiormq", "websockets")

# setup_logging() 재호출 시 factory가 중첩되지 않도록 원본 보관
_base_record_factory: Any = None


def bridge_labels(settings: Settings) -> dict[str, str]:
    """인스턴스 식별 라벨."""
    return {
        "queue_incoming": settings.queue_incoming,
        "queue_outgoing": settings.queue_outgoing,
        "gateway_url": settings.gateway_url,
    }


def setup_logging() -> None:
    """로깅 설정."""
    global _base_record_factory
    settings = get_settings()

    # ECS JSON 포맷터
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ecs_logging.StdlibFormatter())

    # 루트 로거 설정
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if _base_record_factory is None:
        _base_record_factory = logging.getLogRecordFactory()
    base_factory = _base_record_factory

    service = {
        "name": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
    }
    labels = bridge_labels(settings)

    def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        record.service = service
        record.labels = labels
        return record

    logging.setLogRecordFactory(record_factory)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
