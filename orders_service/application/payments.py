from dataclasses import dataclass
from sqlalchemy.orm import Session
from typing import Optional
from orders_service.domain.models import Order, Payment
from orders_service.domain.status import (
    OrderStatus,
    PaymentStatus,
    PaymentRecordStatus,
    PAYABLE_STATUSES,
)
from orders_service.errors import ValidationError
from orders_service.infrastructure.db import unit_of_work
from .inventory import InventoryReservation
from .order_queries import lock_order
from .payment_provider import PaymentProvider
from .transitions import StatusTransitionEngine
from .events import EventPublisher, OrderEvent, publish_after_commit
from .schemas import PaymentRequest
from shared.core import get_logger

logger = get_logger(__name__)

@dataclass
class PaymentOutcome:
    order: Order
    payment: Payment
    success: bool

class PaymentGate:
    def __init__(
        self,
        db: Session,
        provider: PaymentProvider,
        engine: Optional[StatusTransitionEngine] = None,
        publisher: Optional[EventPublisher] = None,
        reserve_on_payment: bool = False,
    ):
        self.db = db
        self.provider = provider
        self.engine = engine or StatusTransitionEngine(db, InventoryReservation(db), publisher)
        self.publisher = publisher
        self.reserve_on_payment = reserve_on_payment

    def process_payment(self, order_id: int, data: PaymentRequest, actor_id: Optional[int]) -> PaymentOutcome:
        """Charge the order total and, on success, move the order into processing.

        A declined charge is still recorded (status ``failed``) and committed;
        the order itself is left untouched so the customer can try again.
        """
        with unit_of_work(self.db):
            order = lock_order(self.db, order_id)
            if order.payment_status != PaymentStatus.PENDING:
                raise ValidationError("This order has already been paid or cannot be paid")
            if OrderStatus(order.status) not in PAYABLE_STATUSES:
                raise ValidationError("This order cannot accept payments in its current status")

            result = self.provider.charge(order.total_amount, data.payment_method, data.payment_details)
            payment = Payment(
                order_id=order.id,
                amount=order.total_amount,
                payment_method=data.payment_method,
                payment_provider=data.payment_provider or self.provider.name,
                transaction_id=result.transaction_id,
                status=(PaymentRecordStatus.COMPLETED if result.success else PaymentRecordStatus.FAILED).value,
                provider_response=result.response,
            )
            order.payments.append(payment)
            self.db.flush()

            if result.success:
                order.payment_status = PaymentStatus.PAID.value
                if self.reserve_on_payment:
                    self.engine.inventory.reserve_order(order)
                self.engine.apply(
                    order,
                    OrderStatus.PROCESSING,
                    actor_id,
                    f"Payment processed successfully. Transaction ID: {result.transaction_id}",
                )

        logger.info(
            f"Payment {'completed' if result.success else 'failed'} for order {order.order_number}",
            extra={'extra_fields': {
                'order_id': order.id,
                'transaction_id': result.transaction_id,
                'amount': str(order.total_amount),
            }}
        )
        publish_after_commit(self.publisher, OrderEvent(
            event="order.paid" if result.success else "order.payment_failed",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            actor_id=actor_id,
        ))
        return PaymentOutcome(order=order, payment=payment, success=result.success)
