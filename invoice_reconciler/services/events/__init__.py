from .event_publisher import EventPublisher, InvoiceDecisionEvent, create_event_publisher
