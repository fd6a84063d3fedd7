from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from sqlalchemy.orm import Session
from typing import Optional
from orders_service.domain.models import Order, Payment
from orders_service.domain.status import (
    OrderStatus,
    PaymentStatus,
    PaymentRecordStatus,
    REFUNDABLE_STATUSES,
)
from orders_service.errors import ValidationError
from orders_service.infrastructure.db import unit_of_work
from .inventory import InventoryReservation
from .order_queries import lock_order, add_history
from .payment_provider import PaymentProvider
from .pricing import CENT, money
from .transitions import StatusTransitionEngine
from .events import EventPublisher, OrderEvent, publish_after_commit
from shared.core import get_logger

logger = get_logger(__name__)

@dataclass
class RefundOutcome:
    order: Order
    payment: Payment
    amount: Decimal
    full_refund: bool
    new_status: str

class RefundProcessor:
    def __init__(
        self,
        db: Session,
        provider: PaymentProvider,
        engine: Optional[StatusTransitionEngine] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.db = db
        self.provider = provider
        self.engine = engine or StatusTransitionEngine(db, InventoryReservation(db), publisher)
        self.publisher = publisher

    def _validate(self, order: Order, amount: Decimal) -> None:
        if OrderStatus(order.status) not in REFUNDABLE_STATUSES:
            raise ValidationError("This order cannot be refunded")
        if order.payment_status != PaymentStatus.PAID:
            raise ValidationError("Cannot refund an unpaid order")
        if not amount.is_finite() or amount <= 0 or amount > order.total_amount:
            raise ValidationError(
                "Invalid refund amount",
                errors=[f"Amount must be greater than 0 and at most {order.total_amount}"],
            )

    def refund(
        self,
        order_id: int,
        amount,
        reason: Optional[str],
        actor_id: Optional[int],
        restock: bool = False,
    ) -> RefundOutcome:
        try:
            amount = Decimal(str(amount))
            if amount.is_finite():
                amount = money(amount)
        except InvalidOperation:
            raise ValidationError("Invalid refund amount")
        with unit_of_work(self.db):
            order = lock_order(self.db, order_id)
            # Bounds apply to the amount actually refunded, in cents
            self._validate(order, amount)

            full_refund = abs(amount - order.total_amount) < CENT
            new_status = OrderStatus.REFUNDED if full_refund else OrderStatus.PARTIALLY_REFUNDED

            original = next(
                (p for p in reversed(order.payments) if p.status == PaymentRecordStatus.COMPLETED and p.amount > 0),
                None,
            )
            result = self.provider.refund(amount, original.transaction_id if original else None, reason)
            if not result.success:
                raise ValidationError("Failed to process refund with payment provider")

            payment = Payment(
                order_id=order.id,
                amount=-amount,
                payment_method=order.payment_method,
                payment_provider=original.payment_provider if original else self.provider.name,
                transaction_id=result.transaction_id,
                status=PaymentRecordStatus.REFUNDED.value,
                provider_response={**result.response, "reason": reason},
            )
            order.payments.append(payment)

            if restock:
                self.engine.inventory.release_order(order)

            comment = f"Order {'refunded' if full_refund else 'partially refunded'}: {reason or 'No reason provided'}"
            if full_refund:
                order.payment_status = PaymentStatus.REFUNDED.value
                # Refund eligibility is checked above; the table has no edge into
                # refunded from shipped/delivered/completed
                self.engine.apply(order, OrderStatus.REFUNDED, actor_id, comment, check=False)
            else:
                # Lifecycle status stays where it is
                order.payment_status = PaymentStatus.PARTIALLY_REFUNDED.value
                add_history(self.db, order, new_status.value, comment, actor_id)

        logger.info(
            f"Order {order.order_number} {'refunded' if full_refund else 'partially refunded'}",
            extra={'extra_fields': {
                'order_id': order.id,
                'amount': str(amount),
                'transaction_id': result.transaction_id,
                'actor_id': actor_id,
            }}
        )
        publish_after_commit(self.publisher, OrderEvent(
            event="order.refunded" if full_refund else "order.partially_refunded",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            actor_id=actor_id,
        ))
        return RefundOutcome(
            order=order,
            payment=payment,
            amount=amount,
            full_refund=full_refund,
            new_status=new_status.value,
        )
