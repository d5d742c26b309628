"""
Azure Service Bus event publishing for purchase request lifecycle events.

Lets downstream systems react to P-Card activity:
- Finance can reconcile approved purchases against card statements
- Audit systems can track every approval decision
- Notification systems can alert requesters
"""

import json
from datetime import datetime, UTC
from typing import Optional
from dataclasses import dataclass, asdict, field

from loguru import logger


REQUEST_SUBMITTED = "RequestSubmitted"
REQUEST_APPROVED = "RequestApproved"
REQUEST_REJECTED = "RequestRejected"
RECEIPT_ANALYZED = "ReceiptAnalyzed"


@dataclass
class PurchaseRequestEvent:
    """
    Event published when a purchase request changes state.

    Carries enough of the request for consumers to act without a lookup.
    """

    event_type: str
    request_id: str
    vendor_name: str
    total_amount: float
    status: str
    actor: Optional[str] = None
    details: dict = field(default_factory=dict)
    timestamp: Optional[str] = None

    def __post_init__(self):
        """Set timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        """JSON body for the Service Bus message"""
        return json.dumps(self.to_dict())


class EventPublisher:
    """
    Publishes events to an Azure Service Bus queue or topic.

    Usage:
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="purchase-request-events")
        publisher = EventPublisher(service_bus_sender=sender)

        # Disabled mode (no Service Bus configured)
        publisher = EventPublisher(service_bus_sender=None)
    """

    def __init__(
        self,
        service_bus_sender: Optional[object] = None,
        entity_name: str = "purchase-request-events"
    ):
        """
        Args:
            service_bus_sender: Azure Service Bus sender (ServiceBusSender) or None to disable
            entity_name: Service Bus queue or topic name
        """
        self.service_bus_sender = service_bus_sender
        self.entity_name = entity_name

    @property
    def enabled(self) -> bool:
        return self.service_bus_sender is not None

    def publish(self, event: PurchaseRequestEvent) -> None:
        """
        Publish a purchase request event.

        No-op when the publisher is disabled.
        """
        if self.service_bus_sender is None:
            return

        from azure.servicebus import ServiceBusMessage

        message = ServiceBusMessage(
            event.to_json(),
            content_type="application/json",
            subject=event.event_type,
        )
        self.service_bus_sender.send_messages(message)


def _build_default_publisher() -> EventPublisher:
    from ...core.config import settings

    if not settings.service_bus_connection_string:
        return EventPublisher(service_bus_sender=None, entity_name=settings.service_bus_queue)

    from azure.servicebus import ServiceBusClient

    client = ServiceBusClient.from_connection_string(settings.service_bus_connection_string)
    sender = client.get_queue_sender(queue_name=settings.service_bus_queue)
    return EventPublisher(service_bus_sender=sender, entity_name=settings.service_bus_queue)


_default_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    """
    Get the default event publisher instance.

    Disabled unless SERVICE_BUS_CONNECTION_STRING is set.
    """
    global _default_publisher
    if _default_publisher is None:
        _default_publisher = _build_default_publisher()
    return _default_publisher


def publish_safely(event: PurchaseRequestEvent, publisher: EventPublisher = None) -> bool:
    """
    Publish without letting a Service Bus failure break the caller.

    Returns:
        True if the event was handed to Service Bus
    """
    publisher = publisher or get_event_publisher()
    if not publisher.enabled:
        return False
    try:
        publisher.publish(event)
        logger.info("Published event", event_type=event.event_type, request_id=event.request_id)
        return True
    except Exception as e:
        logger.warning(f"Failed to publish {event.event_type} event: {e}")
        return False
