from sqlalchemy.orm import Session
from decimal import Decimal
from typing import Callable, Optional, Sequence
import random
import time
from orders_service.domain.models import Order, OrderItem
from orders_service.domain.status import OrderStatus, PaymentStatus
from orders_service.errors import ValidationError
from orders_service.infrastructure.db import unit_of_work
from .catalog import ProductCatalog, ProductSnapshot
from .inventory import InventoryReservation
from .order_queries import add_history
from .events import EventPublisher, OrderEvent, publish_after_commit
from .pricing import ZERO, apply_totals, price_items, shipping_cost
from .schemas import OrderCreate
from shared.core import get_logger

logger = get_logger(__name__)

# Given the priced items and their subtotal, returns the order-level discount
DiscountEngine = Callable[[Sequence[OrderItem], Decimal], Decimal]

class OrderBuilder:
    def __init__(
        self,
        db: Session,
        catalog: ProductCatalog,
        inventory: Optional[InventoryReservation] = None,
        publisher: Optional[EventPublisher] = None,
        discount_engine: Optional[DiscountEngine] = None,
        tax_rate: float = 0.08,
        reserve_on_creation: bool = True,
    ):
        self.db = db
        self.catalog = catalog
        self.inventory = inventory or InventoryReservation(db)
        self.publisher = publisher
        self.discount_engine = discount_engine
        self.tax_rate = tax_rate
        self.reserve_on_creation = reserve_on_creation

    def _generate_order_number(self) -> str:
        """Order number in format ORD-<last 8 digits of ms clock>-<4 random digits>"""
        timestamp = str(int(time.time() * 1000))[-8:]
        suffix = f"{random.randint(0, 9999):04d}"
        return f"ORD-{timestamp}-{suffix}"

    def _validate(self, data: OrderCreate) -> None:
        missing = [
            name for name in ("shipping_address", "payment_method")
            if not getattr(data, name)
        ]
        if not data.cart_items:
            missing.append("cart_items")
        if missing:
            raise ValidationError("Missing required order information", errors=missing)

    def _resolve(self, product_id: int, quantity: int) -> ProductSnapshot:
        product = self.catalog.get_product(product_id)
        if product is None:
            raise ValidationError(f"Product {product_id} is not available")
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is not available")
        available = self.catalog.available_quantity(product_id)
        if available is None or quantity > available:
            raise ValidationError(f"Insufficient inventory for {product.name}")
        return product

    def _build_items(self, data: OrderCreate) -> list[OrderItem]:
        items = []
        for line in data.cart_items:
            product = self._resolve(line.product_id, line.quantity)
            items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                quantity=line.quantity,
                unit_price=product.price,
                product_data=product.as_dict(),
            ))
        return items

    def create(self, user_id: int, data: OrderCreate) -> Order:
        self._validate(data)
        items = self._build_items(data)

        discount = ZERO
        if self.discount_engine is not None:
            provisional = price_items(items, self.tax_rate)
            discount = self.discount_engine(items, provisional.subtotal)
        totals = price_items(items, self.tax_rate, shipping_cost(data.shipping_method), discount)

        shipping_address = data.shipping_address.model_dump()
        billing_address = data.billing_address.model_dump() if data.billing_address else shipping_address

        with unit_of_work(self.db):
            order = Order(
                order_number=self._generate_order_number(),
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                shipping_address=shipping_address,
                billing_address=billing_address,
                payment_method=data.payment_method,
                shipping_method=data.shipping_method,
                notes=data.notes,
                items=items,
            )
            apply_totals(order, totals)
            self.db.add(order)
            self.db.flush()  # assign id

            if self.reserve_on_creation:
                self.inventory.reserve_order(order)
            add_history(self.db, order, order.status, "Order created", user_id)

        logger.info(
            f"Order {order.order_number} created",
            extra={'extra_fields': {
                'order_id': order.id,
                'user_id': user_id,
                'items': len(items),
                'total_amount': str(order.total_amount),
            }}
        )
        publish_after_commit(self.publisher, OrderEvent(
            event="order.created",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            actor_id=user_id,
        ))
        return order
