from sqlalchemy import select
from sqlalchemy.orm import Session
from orders_service.domain.models import Order, OrderHistory
from orders_service.errors import NotFoundError
from typing import Optional

def get_order(db: Session, order_id: int) -> Optional[Order]:
    return db.get(Order, order_id)

def get_order_or_404(db: Session, order_id: int) -> Order:
    order = get_order(db, order_id)
    if order is None:
        raise NotFoundError("Order not found", resource=f"order:{order_id}")
    return order

def lock_order(db: Session, order_id: int) -> Order:
    """Load an order with a row lock held until the surrounding transaction ends."""
    order = db.scalars(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if order is None:
        raise NotFoundError("Order not found", resource=f"order:{order_id}")
    return order

def add_history(db: Session, order: Order, status: str, comment: Optional[str], actor_id: Optional[int]) -> OrderHistory:
    entry = OrderHistory(order_id=order.id, status=status, comment=comment, created_by=actor_id)
    order.history.append(entry)
    db.flush()
    return entry
