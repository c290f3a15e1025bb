"""Analytics event sink passed explicitly to the services that emit events."""
import logging
from enum import StrEnum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventName(StrEnum):
    """Named analytics events emitted by the list operations."""

    CREATE_COLLECTION = "create_collection"
    INSERT_PAGE_COLLECTION = "insert_page_collection"
    REMOVE_COLLECTION = "remove_collection"
    REMOVE_PAGE_COLLECTION = "remove_page_collection"


class EventSink(Protocol):
    """Fire-and-forget consumer of analytics events."""

    def process_event(self, name: EventName, **details: Any) -> None:
        """Record one event. Must not block on I/O."""
        ...


class LoggingEventSink:
    """Event sink that writes every event to the application log."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def process_event(self, name: EventName, **details: Any) -> None:
        """Log the event at INFO level when enabled."""
        if not self.enabled:
            return
        logger.info("analytics event %s %s", name.value, details)


class NullEventSink:
    """Event sink that drops everything."""

    def process_event(self, name: EventName, **details: Any) -> None:  # noqa: ARG002
        """Discard the event."""
        return


def emit_event(sink: EventSink, name: EventName, **details: Any) -> None:
    """
    Send an event to the sink. Sink failures are logged and never reach the caller.
    """
    try:
        sink.process_event(name, **details)
    except Exception:
        logger.exception("Analytics sink failed to process event %s", name.value)
