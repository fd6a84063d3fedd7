from fastapi import Depends, Request
from sqlalchemy.orm import Session
from orders_service.core_settings import Settings, get_settings
from orders_service.infrastructure.db import get_db
from orders_service.application.catalog import DatabaseProductCatalog, HttpProductCatalog, ProductCatalog
from orders_service.application.events import EventPublisher
from orders_service.application.inventory import InventoryReservation
from orders_service.application.order_builder import OrderBuilder
from orders_service.application.payment_provider import PaymentProvider
from orders_service.application.payments import PaymentGate
from orders_service.application.refunds import RefundProcessor
from orders_service.application.service import OrderService
from orders_service.application.transitions import StatusTransitionEngine

# Process-wide collaborators live on app.state and are set at bootstrap

def get_payment_provider(request: Request) -> PaymentProvider:
    return request.app.state.payment_provider

def get_event_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher

def get_catalog(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> ProductCatalog:
    if settings.PRODUCTS_SERVICE_URL:
        return HttpProductCatalog(db, settings.PRODUCTS_SERVICE_URL)
    return DatabaseProductCatalog(db)

def get_transition_engine(
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> StatusTransitionEngine:
    return StatusTransitionEngine(db, InventoryReservation(db), publisher)

def get_order_builder(
    db: Session = Depends(get_db),
    catalog: ProductCatalog = Depends(get_catalog),
    publisher: EventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_settings),
) -> OrderBuilder:
    return OrderBuilder(
        db,
        catalog,
        InventoryReservation(db),
        publisher,
        tax_rate=settings.TAX_RATE,
        reserve_on_creation=not settings.reserve_on_payment,
    )

def get_payment_gate(
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    engine: StatusTransitionEngine = Depends(get_transition_engine),
    publisher: EventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_settings),
) -> PaymentGate:
    return PaymentGate(db, provider, engine, publisher, reserve_on_payment=settings.reserve_on_payment)

def get_refund_processor(
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    engine: StatusTransitionEngine = Depends(get_transition_engine),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> RefundProcessor:
    return RefundProcessor(db, provider, engine, publisher)

def get_order_service(
    db: Session = Depends(get_db),
    engine: StatusTransitionEngine = Depends(get_transition_engine),
    settings: Settings = Depends(get_settings),
) -> OrderService:
    return OrderService(db, engine, tax_rate=settings.TAX_RATE)
