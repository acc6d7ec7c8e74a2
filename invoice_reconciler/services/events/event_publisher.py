"""
Azure Service Bus event publishing for invoice decisions.

Enables downstream systems to react once an invoice leaves the pending list:
- Accounting can book processed invoices
- Audit can track who rejected what and why
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime, UTC
from typing import Optional

from loguru import logger


@dataclass
class InvoiceDecisionEvent:
    """
    Event published when an invoice is processed or rejected.

    event_type is "InvoiceProcessed" or "InvoiceRejected".
    """

    invoice_id: str
    event_type: str
    merchant: str
    supplier_key: str
    total: float
    item_count: int
    reason: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        """Set timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class EventPublisher:
    """
    Publishes events to an Azure Service Bus queue or topic.

    Usage:
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="invoice-events")
        publisher = EventPublisher(service_bus_sender=sender)

        # Disabled mode (no Service Bus configured)
        publisher = EventPublisher(service_bus_sender=None)
    """

    def __init__(self, service_bus_sender: Optional[object] = None, entity_name: str = "invoice-events"):
        self.service_bus_sender = service_bus_sender
        self.entity_name = entity_name

    @property
    def enabled(self) -> bool:
        return self.service_bus_sender is not None

    def publish(self, event: InvoiceDecisionEvent) -> None:
        """
        Publish a decision event.

        Note:
            If service_bus_sender is None, this is a no-op (disabled mode).
        """
        if self.service_bus_sender is None:
            return

        from azure.servicebus import ServiceBusMessage

        message = ServiceBusMessage(event.to_json(), content_type="application/json")
        self.service_bus_sender.send_messages(message)
        logger.info("Published invoice event", event_type=event.event_type, invoice_id=event.invoice_id, entity=self.entity_name)


def create_event_publisher(connection_string: str | None, queue_name: str = "invoice-events") -> EventPublisher:
    """Build a publisher from settings; disabled when no connection string is set"""
    if not connection_string:
        return EventPublisher(service_bus_sender=None, entity_name=queue_name)

    from azure.servicebus import ServiceBusClient

    client = ServiceBusClient.from_connection_string(connection_string)
    return EventPublisher(service_bus_sender=client.get_queue_sender(queue_name=queue_name), entity_name=queue_name)
