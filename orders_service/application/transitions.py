from datetime import datetime, timezone
from sqlalchemy.orm import Session
from typing import Optional
from orders_service.domain.models import Order
from orders_service.domain.status import OrderStatus, RELEASING_STATUSES, can_transition, allowed_transitions
from orders_service.errors import ValidationError
from orders_service.infrastructure.db import unit_of_work
from .inventory import InventoryReservation
from .order_queries import lock_order, add_history
from .events import EventPublisher, OrderEvent, publish_after_commit
from shared.core import get_logger

logger = get_logger(__name__)

def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid order status: {value}",
            errors=[f"Allowed values: {', '.join(s.value for s in OrderStatus)}"],
        ) from None

class StatusTransitionEngine:
    """Applies order status changes against the fixed transition table."""

    def __init__(
        self,
        db: Session,
        inventory: Optional[InventoryReservation] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.db = db
        self.inventory = inventory or InventoryReservation(db)
        self.publisher = publisher

    def transition(self, order_id: int, target, actor_id: Optional[int], comment: Optional[str] = None) -> Order:
        """Change an order's status in its own unit of work and publish the change."""
        target = parse_status(target)
        with unit_of_work(self.db):
            order = lock_order(self.db, order_id)
            previous = order.status
            self.apply(order, target, actor_id, comment)

        self.announce(order, previous, actor_id)
        return order

    def announce(self, order: Order, previous: str, actor_id: Optional[int]) -> None:
        """Log and publish a status change once it is committed."""
        logger.info(
            f"Order {order.order_number} moved from {previous} to {order.status}",
            extra={'extra_fields': {'order_id': order.id, 'actor_id': actor_id}}
        )
        publish_after_commit(self.publisher, OrderEvent(
            event="order.status_changed",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            actor_id=actor_id,
            previous_status=previous,
        ))

    def apply(
        self,
        order: Order,
        target: OrderStatus,
        actor_id: Optional[int],
        comment: Optional[str] = None,
        check: bool = True,
    ) -> Order:
        """Change the status of an already-locked order without committing.

        ``check=False`` skips the table lookup; callers that apply their own
        eligibility rules (refunds) use it.
        """
        current = OrderStatus(order.status)
        target = OrderStatus(target)
        if check and not can_transition(current, target):
            allowed = sorted(s.value for s in allowed_transitions(current))
            raise ValidationError(
                f"Cannot transition from {current.value} to {target.value}",
                errors=[f"Allowed from {current.value}: {', '.join(allowed) or 'none'}"],
            )

        self._apply_inventory_effects(order, target)

        now = datetime.now(timezone.utc)
        order.status = target.value
        order.updated_at = now
        if target is OrderStatus.COMPLETED:
            order.completed_at = now

        add_history(self.db, order, target.value, comment or f"Order status updated to {target.value}", actor_id)
        return order

    def _apply_inventory_effects(self, order: Order, target: OrderStatus) -> None:
        if target in RELEASING_STATUSES:
            self.inventory.release_order(order)
        elif target is OrderStatus.PROCESSING:
            # No-op when already held; covers reactivation and orders placed without a reservation
            self.inventory.reserve_order(order)
        elif target is OrderStatus.SHIPPED:
            self.inventory.fulfil_order(order)
