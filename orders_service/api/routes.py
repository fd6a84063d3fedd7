from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from datetime import datetime
from typing import Optional
from orders_service.auth import Actor, get_current_actor, require_roles, ADMIN, SELLER
from orders_service.errors import AuthorizationError
from orders_service.application.order_builder import OrderBuilder
from orders_service.application.payments import PaymentGate
from orders_service.application.refunds import RefundProcessor
from orders_service.application.service import OrderService, OrderFilters
from orders_service.application.transitions import StatusTransitionEngine
from orders_service.application.schemas import (
    OrderCreate,
    OrderRead,
    OrderDetail,
    OrderPage,
    OrderHistoryRead,
    StatusUpdate,
    CancelRequest,
    HistoryNote,
    PaymentRequest,
    PaymentResult,
    PaymentDetails,
    RefundRequest,
    RefundResult,
    OrderItemUpdate,
)
from orders_service.domain.models import Order
from .dependencies import (
    get_order_builder,
    get_order_service,
    get_payment_gate,
    get_refund_processor,
    get_transition_engine,
)

router = APIRouter(prefix="/orders", tags=["orders"])

def _ensure_can_view(order: Order, actor: Actor) -> None:
    if order.user_id != actor.user_id and not actor.is_staff:
        raise AuthorizationError("You do not have permission to view this order")

def _filters(
    status: Optional[str] = Query(None, max_length=30),
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    min_amount: Optional[float] = Query(None, alias="minAmount", ge=0),
    max_amount: Optional[float] = Query(None, alias="maxAmount", ge=0),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("DESC", alias="sortOrder", pattern="^(ASC|DESC|asc|desc)$"),
) -> OrderFilters:
    return OrderFilters(
        status=status,
        from_date=from_date,
        to_date=to_date,
        min_amount=min_amount,
        max_amount=max_amount,
        sort_by=sort_by,
        sort_order=sort_order,
    )

@router.post("/", response_model=OrderRead, status_code=201)
def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(get_current_actor),
    builder: OrderBuilder = Depends(get_order_builder),
):
    return builder.create(actor.user_id, payload)

@router.get("/", response_model=OrderPage)
def list_orders(
    filters: OrderFilters = Depends(_filters),
    customer_id: Optional[int] = Query(None, alias="customerId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_roles(ADMIN, SELLER)),
    service: OrderService = Depends(get_order_service),
):
    """List all orders (staff only) with filtering, sorting and pagination."""
    filters.customer_id = customer_id
    orders, pagination = service.list(filters, page=page, limit=limit)
    return {"data": orders, "pagination": pagination}

@router.get("/me", response_model=OrderPage)
def list_my_orders(
    filters: OrderFilters = Depends(_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    filters.customer_id = actor.user_id
    orders, pagination = service.list(filters, page=page, limit=limit)
    return {"data": orders, "pagination": pagination}

@router.get("/export")
def export_orders(
    filters: OrderFilters = Depends(_filters),
    customer_id: Optional[int] = Query(None, alias="customerId"),
    actor: Actor = Depends(require_roles(ADMIN)),
    service: OrderService = Depends(get_order_service),
):
    filters.customer_id = customer_id
    content = service.export_csv(filters)
    filename = f"orders-export-{int(datetime.now().timestamp() * 1000)}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )

@router.get("/{order_id}", response_model=OrderDetail)
def get_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """Get a specific order with its items and audit trail."""
    order = service.get(order_id)
    _ensure_can_view(order, actor)
    return order

@router.get("/{order_id}/history", response_model=list[OrderHistoryRead])
def get_order_history(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    _ensure_can_view(service.get(order_id), actor)
    return service.history(order_id)

@router.post("/{order_id}/history", response_model=OrderHistoryRead, status_code=201)
def add_order_history_note(
    order_id: int,
    payload: HistoryNote,
    actor: Actor = Depends(require_roles(ADMIN, SELLER)),
    service: OrderService = Depends(get_order_service),
):
    return service.add_note(order_id, payload.comment, actor.user_id)

@router.put("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    actor: Actor = Depends(require_roles(ADMIN, SELLER)),
    engine: StatusTransitionEngine = Depends(get_transition_engine),
):
    return engine.transition(order_id, payload.status, actor.user_id, payload.comment)

@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(
    order_id: int,
    payload: CancelRequest,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    return service.cancel(order_id, actor.user_id, actor.is_admin, payload.reason)

@router.post("/{order_id}/payment", response_model=PaymentResult)
def process_payment(
    order_id: int,
    payload: PaymentRequest,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
    gate: PaymentGate = Depends(get_payment_gate),
):
    order = service.get(order_id)
    if order.user_id != actor.user_id and not actor.is_admin:
        raise AuthorizationError("You do not have permission to process payment for this order")
    outcome = gate.process_payment(order_id, payload, actor.user_id)
    return {
        "success": outcome.success,
        "status": outcome.payment.status,
        "transaction_id": outcome.payment.transaction_id,
        "amount": outcome.payment.amount,
        "order": outcome.order,
    }

@router.get("/{order_id}/payment", response_model=PaymentDetails)
def get_payment_details(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    order = service.get(order_id)
    _ensure_can_view(order, actor)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "total_amount": order.total_amount,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "transactions": list(reversed(order.payments)),
    }

@router.post("/{order_id}/refund", response_model=RefundResult)
def refund_order(
    order_id: int,
    payload: RefundRequest,
    actor: Actor = Depends(require_roles(ADMIN)),
    processor: RefundProcessor = Depends(get_refund_processor),
):
    outcome = processor.refund(order_id, payload.amount, payload.reason, actor.user_id, restock=payload.restock)
    return {
        "refund_amount": outcome.amount,
        "transaction_id": outcome.payment.transaction_id,
        "full_refund": outcome.full_refund,
        "new_status": outcome.new_status,
        "order": outcome.order,
    }

@router.put("/{order_id}/items/{item_id}", response_model=OrderRead)
def update_order_item(
    order_id: int,
    item_id: int,
    payload: OrderItemUpdate,
    actor: Actor = Depends(require_roles(ADMIN)),
    service: OrderService = Depends(get_order_service),
):
    return service.update_item(order_id, item_id, payload.quantity, actor.user_id)
