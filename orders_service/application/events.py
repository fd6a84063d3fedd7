from dataclasses import dataclass, asdict
from typing import Optional, Protocol

from shared.core import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderEvent:
    """Emitted after an order-mutating unit of work commits."""

    event: str
    order_id: int
    order_number: str
    status: str
    actor_id: Optional[int] = None
    previous_status: Optional[str] = None


class EventPublisher(Protocol):
    def publish(self, event: OrderEvent) -> None:
        ...


class LoggingEventPublisher:
    def publish(self, event: OrderEvent) -> None:
        logger.info(f"Order event: {event.event}", extra={'extra_fields': asdict(event)})


def publish_after_commit(publisher: Optional[EventPublisher], event: OrderEvent) -> None:
    """Hand the event to the publisher; the order change is already durable."""
    if publisher is None:
        return
    try:
        publisher.publish(event)
    except Exception:
        logger.exception(
            f"Failed to publish {event.event} for order {event.order_number}",
            extra={'extra_fields': asdict(event)}
        )
