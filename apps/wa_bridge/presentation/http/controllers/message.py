"""Message API Controller.

- POST /message/send   전송 명령을 outgoing 큐에 발행 (202 Accepted)

응답은 "처리 접수"만 의미하며 전달 완료를 보장하지 않습니다.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field

from apps.wa_bridge.setup.dependencies import PublisherDep, SettingsDep

router = APIRouter(prefix="/message", tags=["message"])
logger = logging.getLogger(__name__)

ACCEPTED_MESSAGE = "Message accepted for processing."


class SendMessageRequest(BaseModel):
    """메시지 전송 요청."""

    model_config = ConfigDict(extra="forbid")

    to: str = Field(
        min_length=10,
        max_length=20,
        pattern=r"^\d+$",
        description="수신자 전화번호 (숫자만)",
    )
    text: str = Field(min_length=1, description="메시지 본문")


class SendMessageResponse(BaseModel):
    """메시지 전송 응답."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(description="처리 상태 메시지")
    correlation_id: str = Field(alias="correlationId", description="추적용 ID")
    recipient: str = Field(description="수신자")


@router.post(
    "/send",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SendMessageResponse,
    response_model_by_alias=True,
)
async def send_message(
    request: SendMessageRequest,
    publisher: PublisherDep,
    settings: SettingsDep,
) -> SendMessageResponse:
    """전송 명령 발행."""
    correlation_id = str(uuid.uuid4())
    logger.info(
        "Received request to send message",
        extra={"correlation_id": correlation_id, "to": request.to},
    )

    try:
        await publisher.publish(
            settings.queue_outgoing,
            {"correlationId": correlation_id, "to": request.to, "text": request.text},
        )
    except Exception as e:
        logger.error(
            "Failed to publish send command",
            extra={
                "correlation_id": correlation_id,
                "queue": settings.queue_outgoing,
                "error": str(e),
            },
        )
        raise

    logger.info(
        "Send command published",
        extra={"correlation_id": correlation_id, "queue": settings.queue_outgoing},
    )
    return SendMessageResponse(
        message=ACCEPTED_MESSAGE,
        correlation_id=correlation_id,
        recipient=request.to,
    )
