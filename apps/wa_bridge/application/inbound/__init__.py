"""Inbound (gateway → broker) 처리."""

from apps.wa_bridge.application.inbound.filters import DropReason
from apps.wa_bridge.application.inbound.processor import (
    InboundMessageProcessor,
    InboundResult,
)

__all__ = ["DropReason", "InboundMessageProcessor", "InboundResult"]
