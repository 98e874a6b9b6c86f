"""Messaging Infrastructure (RabbitMQ)."""

from apps.wa_bridge.infrastructure.messaging.rabbitmq_connector import (
    BrokerHandle,
    RabbitMQConnector,
)
from apps.wa_bridge.infrastructure.messaging.rabbitmq_consumer import (
    RabbitMQCommandConsumer,
)
from apps.wa_bridge.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher

__all__ = [
    "BrokerHandle",
    "RabbitMQCommandConsumer",
    "RabbitMQConnector",
    "RabbitMQPublisher",
]
