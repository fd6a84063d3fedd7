from sqlalchemy import select, func
from sqlalchemy.orm import Session
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List
import csv
import io
from orders_service.domain.models import Order, OrderItem, OrderHistory
from orders_service.domain.status import (
    OrderStatus,
    PaymentStatus,
    MODIFIABLE_STATUSES,
    CUSTOMER_CANCELLABLE_STATUSES,
)
from orders_service.errors import AuthorizationError, NotFoundError, ValidationError
from orders_service.infrastructure.db import unit_of_work
from .inventory import InventoryReservation
from .order_queries import get_order_or_404, lock_order, add_history
from .pricing import apply_totals, price_items
from .transitions import StatusTransitionEngine
from shared.core import get_logger

logger = get_logger(__name__)

SORTABLE_COLUMNS = {
    "created_at": Order.created_at,
    "total_amount": Order.total_amount,
    "order_number": Order.order_number,
    "status": Order.status,
}

EXPORT_COLUMNS = [
    ("order_number", "Order Number"),
    ("created_at", "Date"),
    ("status", "Status"),
    ("payment_status", "Payment Status"),
    ("customer_name", "Customer"),
    ("customer_id", "Customer ID"),
    ("subtotal", "Subtotal"),
    ("tax_amount", "Tax"),
    ("shipping_amount", "Shipping"),
    ("discount_amount", "Discount"),
    ("total_amount", "Total"),
    ("items_count", "Items Count"),
]

@dataclass
class OrderFilters:
    status: Optional[str] = None
    customer_id: Optional[int] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    sort_by: str = "created_at"
    sort_order: str = "DESC"

class OrderService:
    """Read side of the order lifecycle plus the smaller administrative edits."""

    def __init__(self, db: Session, engine: Optional[StatusTransitionEngine] = None, tax_rate: float = 0.08):
        self.db = db
        self.engine = engine or StatusTransitionEngine(db, InventoryReservation(db))
        self.tax_rate = tax_rate

    def get(self, order_id: int) -> Order:
        return get_order_or_404(self.db, order_id)

    def _filtered(self, filters: OrderFilters):
        stmt = select(Order)
        if filters.status:
            stmt = stmt.where(Order.status == filters.status)
        if filters.customer_id is not None:
            stmt = stmt.where(Order.user_id == filters.customer_id)
        if filters.from_date:
            stmt = stmt.where(Order.created_at >= filters.from_date)
        if filters.to_date:
            stmt = stmt.where(Order.created_at <= filters.to_date)
        if filters.min_amount is not None:
            stmt = stmt.where(Order.total_amount >= filters.min_amount)
        if filters.max_amount is not None:
            stmt = stmt.where(Order.total_amount <= filters.max_amount)
        return stmt

    def _ordered(self, stmt, filters: OrderFilters):
        column = SORTABLE_COLUMNS.get(filters.sort_by)
        if column is None:
            raise ValidationError(
                f"Cannot sort by {filters.sort_by}",
                errors=[f"Sortable columns: {', '.join(SORTABLE_COLUMNS)}"],
            )
        direction = column.asc() if filters.sort_order.upper() == "ASC" else column.desc()
        return stmt.order_by(direction, Order.id.desc())

    def list(self, filters: OrderFilters, page: int = 1, limit: int = 20) -> tuple[List[Order], dict]:
        stmt = self._filtered(filters)
        total = self.db.scalar(select(func.count()).select_from(stmt.subquery()))
        orders = self.db.scalars(
            self._ordered(stmt, filters).offset((page - 1) * limit).limit(limit)
        ).all()
        pagination = {
            "page": page,
            "limit": limit,
            "total_items": total,
            "total_pages": (total + limit - 1) // limit,
        }
        return list(orders), pagination

    def history(self, order_id: int) -> List[OrderHistory]:
        return list(self.get(order_id).history)

    def add_note(self, order_id: int, comment: str, actor_id: Optional[int]) -> OrderHistory:
        """Append a comment to the audit trail without changing the status."""
        with unit_of_work(self.db):
            order = lock_order(self.db, order_id)
            entry = add_history(self.db, order, order.status, comment, actor_id)
        return entry

    def cancel(self, order_id: int, actor_id: int, is_admin: bool, reason: Optional[str] = None) -> Order:
        with unit_of_work(self.db):
            # Checked under the row lock so a concurrent status change cannot slip past
            order = lock_order(self.db, order_id)
            if not is_admin:
                if order.user_id != actor_id:
                    raise AuthorizationError("You do not have permission to cancel this order")
                if OrderStatus(order.status) not in CUSTOMER_CANCELLABLE_STATUSES:
                    raise ValidationError("This order cannot be cancelled in its current status")
            previous = order.status
            self.engine.apply(order, OrderStatus.CANCELLED, actor_id, reason or "Cancelled by customer")

        self.engine.announce(order, previous, actor_id)
        return order

    def update_item(self, order_id: int, item_id: int, quantity: int, actor_id: Optional[int]) -> Order:
        """Change an item's quantity, move the stock difference and reprice the order."""
        with unit_of_work(self.db):
            order = lock_order(self.db, order_id)
            if OrderStatus(order.status) not in MODIFIABLE_STATUSES:
                raise ValidationError("This order cannot be modified")
            if order.payment_status != PaymentStatus.PENDING or order.payments:
                raise ValidationError("Order items cannot be changed once a payment exists")

            item: Optional[OrderItem] = next((i for i in order.items if i.id == item_id), None)
            if item is None:
                raise NotFoundError("Order item not found", resource=f"order_item:{item_id}")

            difference = quantity - item.quantity
            if order.inventory_reserved and difference > 0:
                self.engine.inventory.reserve(item.product_id, difference, label=item.name)
            elif order.inventory_reserved and difference < 0:
                self.engine.inventory.release(item.product_id, -difference)

            item.quantity = quantity
            totals = price_items(order.items, self.tax_rate, order.shipping_amount, order.discount_amount)
            apply_totals(order, totals)
            add_history(self.db, order, order.status, f"Order item updated: {item.name}", actor_id)

        logger.info(
            f"Order {order.order_number} item {item_id} quantity set to {quantity}",
            extra={'extra_fields': {'order_id': order.id, 'actor_id': actor_id}}
        )
        return order

    def export_csv(self, filters: OrderFilters) -> str:
        orders = self.db.scalars(self._ordered(self._filtered(filters), filters)).all()
        if not orders:
            raise NotFoundError("No orders found for the specified criteria")

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([title for _, title in EXPORT_COLUMNS])
        for order in orders:
            row = self._export_row(order)
            writer.writerow([row[key] for key, _ in EXPORT_COLUMNS])
        return buffer.getvalue()

    def _export_row(self, order: Order) -> dict:
        address = order.shipping_address or {}
        return {
            "order_number": order.order_number,
            "created_at": order.created_at.date().isoformat() if order.created_at else "",
            "status": order.status,
            "payment_status": order.payment_status,
            "customer_name": f"{address.get('first_name', '')} {address.get('last_name', '')}".strip(),
            "customer_id": order.user_id,
            "subtotal": f"{order.subtotal:.2f}",
            "tax_amount": f"{order.tax_amount:.2f}",
            "shipping_amount": f"{order.shipping_amount:.2f}",
            "discount_amount": f"{order.discount_amount:.2f}",
            "total_amount": f"{order.total_amount:.2f}",
            "items_count": len(order.items),
        }
