"""
Shared fixtures: an in-memory SQLite database, seeded catalog and stock,
service objects wired to it, and a TestClient bound to the same session.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orders_service.main import app
from orders_service.auth import create_access_token
from orders_service.infrastructure.db import get_db
from orders_service.domain.models import Base, Inventory, Product
from orders_service.application.catalog import DatabaseProductCatalog
from orders_service.application.events import OrderEvent
from orders_service.application.inventory import InventoryReservation
from orders_service.application.order_builder import OrderBuilder
from orders_service.application.payment_provider import MockPaymentProvider
from orders_service.application.payments import PaymentGate
from orders_service.application.refunds import RefundProcessor
from orders_service.application.schemas import OrderCreate
from orders_service.application.service import OrderService
from orders_service.application.transitions import StatusTransitionEngine

WIDGET_ID = 1
GADGET_ID = 2
RETIRED_ID = 3

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address_line1": "12 Analytical Row",
    "city": "London",
    "postal_code": "N1 9GU",
    "country": "UK",
}

class RecordingPublisher:
    def __init__(self):
        self.events: List[OrderEvent] = []

    def publish(self, event: OrderEvent) -> None:
        self.events.append(event)

    @property
    def names(self) -> List[str]:
        return [event.event for event in self.events]

def order_payload(*lines, shipping_method="standard", **overrides) -> dict:
    payload = {
        "shipping_address": ADDRESS,
        "payment_method": "credit_card",
        "shipping_method": shipping_method,
        "cart_items": [{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines],
    }
    payload.update(overrides)
    return payload

def stock(db, product_id: int) -> Inventory:
    return db.scalars(
        select(Inventory)
        .where(Inventory.product_id == product_id)
        .execution_options(populate_existing=True)
    ).one()

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()

@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    session.add_all([
        Product(id=WIDGET_ID, sku="WID-001", name="Widget", price=Decimal("10.00"), is_active=True),
        Product(id=GADGET_ID, sku="GAD-001", name="Gadget", price=Decimal("25.50"), is_active=True),
        Product(id=RETIRED_ID, sku="OLD-001", name="Retired", price=Decimal("5.00"), is_active=False),
        Inventory(product_id=WIDGET_ID, quantity=10, reserved_quantity=0),
        Inventory(product_id=GADGET_ID, quantity=3, reserved_quantity=0),
        Inventory(product_id=RETIRED_ID, quantity=50, reserved_quantity=0),
    ])
    session.commit()
    yield session
    session.close()

@pytest.fixture
def publisher():
    return RecordingPublisher()

@pytest.fixture
def engine_service(db, publisher):
    return StatusTransitionEngine(db, InventoryReservation(db), publisher)

@pytest.fixture
def builder(db, publisher):
    return OrderBuilder(db, DatabaseProductCatalog(db), InventoryReservation(db), publisher)

@pytest.fixture
def gate(db, engine_service, publisher):
    return PaymentGate(db, MockPaymentProvider(), engine_service, publisher)

@pytest.fixture
def refunds(db, engine_service, publisher):
    return RefundProcessor(db, MockPaymentProvider(), engine_service, publisher)

@pytest.fixture
def order_service(db, engine_service):
    return OrderService(db, engine_service)

@pytest.fixture
def place_order(builder):
    """Place an order for ``user_id`` from ``(product_id, quantity)`` pairs."""
    def _place(*lines, user_id=7, **kwargs):
        return builder.create(user_id, OrderCreate(**order_payload(*lines, **kwargs)))
    return _place

@pytest.fixture
def client(db, publisher):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    previous_publisher = app.state.event_publisher
    app.state.event_publisher = publisher
    with_client = TestClient(app)
    yield with_client
    app.dependency_overrides.clear()
    app.state.event_publisher = previous_publisher

def auth_headers(user_id: int = 7, role: str = "customer") -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user_id), role=role)}"}
