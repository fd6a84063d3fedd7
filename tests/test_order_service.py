import csv
import io
from decimal import Decimal

import pytest
from sqlalchemy import update

from conftest import GADGET_ID, WIDGET_ID, stock
from orders_service.application.schemas import PaymentRequest
from orders_service.application.service import EXPORT_COLUMNS, OrderFilters
from orders_service.domain.models import Order
from orders_service.errors import AuthorizationError, NotFoundError, ValidationError

CARD = PaymentRequest(payment_method="credit_card", payment_details={})

class TestListing:
    def test_pagination(self, place_order, order_service):
        for _ in range(3):
            place_order((WIDGET_ID, 1))

        orders, pagination = order_service.list(OrderFilters(), page=1, limit=2)
        assert len(orders) == 2
        assert pagination == {"page": 1, "limit": 2, "total_items": 3, "total_pages": 2}

        orders, _ = order_service.list(OrderFilters(), page=2, limit=2)
        assert len(orders) == 1

    def test_filters(self, place_order, order_service, engine_service):
        first = place_order((WIDGET_ID, 1), user_id=1)
        place_order((GADGET_ID, 1), user_id=2)
        engine_service.transition(first.id, "cancelled", actor_id=1)

        cancelled, _ = order_service.list(OrderFilters(status="cancelled"))
        assert [o.id for o in cancelled] == [first.id]

        mine, _ = order_service.list(OrderFilters(customer_id=2))
        assert [o.user_id for o in mine] == [2]

        expensive, _ = order_service.list(OrderFilters(min_amount=30))
        assert [o.user_id for o in expensive] == [2]

    def test_sorting(self, place_order, order_service):
        cheap = place_order((WIDGET_ID, 1))
        dear = place_order((GADGET_ID, 1))
        orders, _ = order_service.list(OrderFilters(sort_by="total_amount", sort_order="ASC"))
        assert [o.id for o in orders] == [cheap.id, dear.id]

    def test_unknown_sort_column(self, order_service):
        with pytest.raises(ValidationError, match="Cannot sort by password"):
            order_service.list(OrderFilters(sort_by="password"))

class TestExport:
    def test_csv_layout(self, place_order, order_service):
        order = place_order((WIDGET_ID, 2), user_id=5)
        rows = list(csv.reader(io.StringIO(order_service.export_csv(OrderFilters()))))

        assert rows[0] == [title for _, title in EXPORT_COLUMNS]
        assert len(rows) == 2
        row = dict(zip(rows[0], rows[1]))
        assert row["Order Number"] == order.order_number
        assert row["Customer"] == "Ada Lovelace"
        assert row["Customer ID"] == "5"
        assert row["Total"] == "27.59"
        assert row["Items Count"] == "1"

    def test_nothing_to_export(self, order_service):
        with pytest.raises(NotFoundError, match="No orders found for the specified criteria"):
            order_service.export_csv(OrderFilters())

class TestCancellation:
    def test_owner_cancels_pending_order(self, db, place_order, order_service):
        order = place_order((WIDGET_ID, 2), user_id=7)
        order_service.cancel(order.id, actor_id=7, is_admin=False)

        assert order.status == "cancelled"
        assert order.history[-1].comment == "Cancelled by customer"
        assert stock(db, WIDGET_ID).quantity == 10

    def test_other_customer_cannot_cancel(self, place_order, order_service):
        order = place_order((WIDGET_ID, 1), user_id=7)
        with pytest.raises(AuthorizationError):
            order_service.cancel(order.id, actor_id=8, is_admin=False)

    def test_customer_cannot_cancel_shipped_order(self, place_order, order_service, engine_service):
        order = place_order((WIDGET_ID, 1), user_id=7)
        engine_service.transition(order.id, "processing", actor_id=1)
        engine_service.transition(order.id, "shipped", actor_id=1)
        with pytest.raises(ValidationError, match="This order cannot be cancelled in its current status"):
            order_service.cancel(order.id, actor_id=7, is_admin=False)

    def test_status_is_rechecked_at_cancel_time(self, db, place_order, order_service, engine_service):
        """Another writer puts the order on hold; the session still holds the stale status"""
        order = place_order((WIDGET_ID, 2), user_id=7)
        engine_service.transition(order.id, "processing", actor_id=1)
        db.execute(
            update(Order).where(Order.id == order.id).values(status="on_hold"),
            execution_options={"synchronize_session": False},
        )
        db.commit()
        assert order.status == "processing"

        with pytest.raises(ValidationError, match="This order cannot be cancelled in its current status"):
            order_service.cancel(order.id, actor_id=7, is_admin=False)
        db.expire_all()
        assert order.status == "on_hold"
        assert stock(db, WIDGET_ID).quantity == 8

    def test_cancel_publishes_status_change(self, place_order, order_service, publisher):
        order = place_order((WIDGET_ID, 1), user_id=7)
        order_service.cancel(order.id, actor_id=7, is_admin=False)

        assert publisher.names[-1] == "order.status_changed"
        assert publisher.events[-1].previous_status == "pending"
        assert publisher.events[-1].status == "cancelled"

    def test_admin_cancel_with_reason(self, place_order, order_service):
        order = place_order((WIDGET_ID, 1), user_id=7)
        engine_order = order_service.cancel(order.id, actor_id=1, is_admin=True, reason="Fraud check")
        assert engine_order.history[-1].comment == "Fraud check"

class TestItemUpdate:
    def test_quantity_change_reprices_and_moves_stock(self, db, place_order, order_service):
        order = place_order((WIDGET_ID, 2))
        item = order.items[0]
        order_service.update_item(order.id, item.id, 4, actor_id=1)

        assert item.quantity == 4
        assert order.subtotal == Decimal("40.00")
        assert order.tax_amount == Decimal("3.20")
        assert order.total_amount == Decimal("49.19")
        assert order.history[-1].comment == "Order item updated: Widget"
        assert order.history[-1].status == "pending"
        assert stock(db, WIDGET_ID).quantity == 6

        order_service.update_item(order.id, item.id, 1, actor_id=1)
        assert order.total_amount == Decimal("16.79")
        assert stock(db, WIDGET_ID).quantity == 9

    def test_increase_beyond_stock(self, db, place_order, order_service):
        order = place_order((GADGET_ID, 2))
        with pytest.raises(ValidationError, match="Insufficient inventory for Gadget"):
            order_service.update_item(order.id, order.items[0].id, 4, actor_id=1)
        db.expire_all()
        assert order.items[0].quantity == 2
        assert stock(db, GADGET_ID).quantity == 1

    def test_paid_order_is_locked(self, place_order, order_service, gate):
        order = place_order((WIDGET_ID, 2))
        gate.process_payment(order.id, CARD, actor_id=7)
        with pytest.raises(ValidationError, match="Order items cannot be changed once a payment exists"):
            order_service.update_item(order.id, order.items[0].id, 3, actor_id=1)

    def test_unknown_item(self, place_order, order_service):
        order = place_order((WIDGET_ID, 1))
        with pytest.raises(NotFoundError, match="Order item not found"):
            order_service.update_item(order.id, 999, 3, actor_id=1)

class TestHistoryNotes:
    def test_note_keeps_status(self, place_order, order_service):
        order = place_order((WIDGET_ID, 1))
        entry = order_service.add_note(order.id, "Customer called", actor_id=2)

        assert (entry.status, entry.comment, entry.created_by) == ("pending", "Customer called", 2)
        assert [h.comment for h in order_service.history(order.id)] == ["Order created", "Customer called"]
