"""Broker Consumer Presentation."""

from apps.wa_bridge.presentation.consumer.adapter import SendCommandConsumerAdapter

__all__ = ["SendCommandConsumerAdapter"]
