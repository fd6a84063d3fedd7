from sqlalchemy import case, select, update
from sqlalchemy.orm import Session
from typing import Optional
from orders_service.domain.models import Inventory, Order
from orders_service.domain.status import OrderStatus, FULFILLED_STATUSES
from orders_service.errors import ValidationError
from shared.core import get_logger

logger = get_logger(__name__)

class InventoryReservation:
    """Moves stock between available and reserved inside the caller's transaction.

    Nothing here commits. Each method issues a single conditional UPDATE so the
    check and the change happen atomically in the database, and a decrement can
    never take ``quantity`` below zero even with concurrent writers.
    Inventory objects already loaded in the session are not refreshed.
    """

    def __init__(self, db: Session):
        self.db = db

    def _inventory_exists(self, product_id: int) -> bool:
        return self.db.scalar(select(Inventory.id).where(Inventory.product_id == product_id)) is not None

    def _shrink_reserved(self, quantity: int):
        return case(
            (Inventory.reserved_quantity > quantity, Inventory.reserved_quantity - quantity),
            else_=0,
        )

    def reserve(self, product_id: int, quantity: int, label: Optional[str] = None) -> None:
        result = self.db.execute(
            update(Inventory)
            .where(Inventory.product_id == product_id, Inventory.quantity >= quantity)
            .values(
                quantity=Inventory.quantity - quantity,
                reserved_quantity=Inventory.reserved_quantity + quantity,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if not self._inventory_exists(product_id):
                raise ValidationError(f"No inventory found for product: {label or product_id}")
            raise ValidationError(f"Insufficient inventory for {label or f'product {product_id}'}")

    def release(self, product_id: int, quantity: int, reserved: bool = True) -> None:
        values = {"quantity": Inventory.quantity + quantity}
        if reserved:
            values["reserved_quantity"] = self._shrink_reserved(quantity)
        result = self.db.execute(
            update(Inventory)
            .where(Inventory.product_id == product_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"No inventory row to release {quantity} unit(s) of product {product_id} into")

    def fulfil(self, product_id: int, quantity: int) -> None:
        """Drop a reservation for stock that has physically left the warehouse."""
        self.db.execute(
            update(Inventory)
            .where(Inventory.product_id == product_id)
            .values(reserved_quantity=self._shrink_reserved(quantity))
            .execution_options(synchronize_session=False)
        )

    def reserve_order(self, order: Order) -> None:
        if order.inventory_reserved:
            return
        for item in order.items:
            self.reserve(item.product_id, item.quantity, label=item.name)
        order.inventory_reserved = True

    def release_order(self, order: Order) -> None:
        if not order.inventory_reserved:
            return
        reserved = OrderStatus(order.status) not in FULFILLED_STATUSES
        for item in order.items:
            self.release(item.product_id, item.quantity, reserved=reserved)
        order.inventory_reserved = False

    def fulfil_order(self, order: Order) -> None:
        if not order.inventory_reserved:
            return
        for item in order.items:
            self.fulfil(item.product_id, item.quantity)
