from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, Optional

class Address(BaseModel):
    first_name: str
    last_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    phone: Optional[str] = None

class CartLine(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)

class OrderCreate(BaseModel):
    shipping_address: Optional[Address] = None
    # Defaults to the shipping address
    billing_address: Optional[Address] = None
    payment_method: Optional[str] = None
    cart_items: list[CartLine] = []
    shipping_method: Optional[str] = None
    notes: Optional[str] = None

class StatusUpdate(BaseModel):
    status: str
    comment: Optional[str] = None

class CancelRequest(BaseModel):
    reason: Optional[str] = None

class HistoryNote(BaseModel):
    comment: str = Field(min_length=1)

class PaymentRequest(BaseModel):
    payment_method: str
    payment_provider: Optional[str] = None
    payment_details: Dict[str, Any] = {}

class RefundRequest(BaseModel):
    amount: float = Field(gt=0, allow_inf_nan=False)
    reason: Optional[str] = None
    restock: bool = False

class OrderItemUpdate(BaseModel):
    quantity: int = Field(gt=0)

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    name: str
    sku: str
    quantity: int
    unit_price: float
    subtotal: float
    tax_amount: float
    discount_amount: float
    total: float
    product_data: Optional[Dict[str, Any]] = None
    class Config:
        from_attributes = True

class OrderHistoryRead(BaseModel):
    id: int
    status: str
    comment: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    class Config:
        from_attributes = True

class PaymentRead(BaseModel):
    id: int
    order_id: int
    amount: float
    payment_method: str
    payment_provider: str
    transaction_id: Optional[str] = None
    status: str
    provider_response: Optional[Dict[str, Any]] = None
    created_at: datetime
    class Config:
        from_attributes = True

class OrderSummary(BaseModel):
    id: int
    order_number: str
    user_id: int
    status: str
    payment_status: str
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    payment_method: str
    shipping_method: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class OrderRead(OrderSummary):
    shipping_address: Dict[str, Any]
    billing_address: Dict[str, Any]
    notes: Optional[str] = None
    items: list[OrderItemRead]

class OrderDetail(OrderRead):
    history: list[OrderHistoryRead] = []

class Pagination(BaseModel):
    page: int
    limit: int
    total_items: int
    total_pages: int

class OrderPage(BaseModel):
    data: list[OrderSummary]
    pagination: Pagination

class PaymentResult(BaseModel):
    success: bool
    status: str
    transaction_id: Optional[str] = None
    amount: float
    order: OrderRead

class RefundResult(BaseModel):
    refund_amount: float
    transaction_id: Optional[str] = None
    full_refund: bool
    new_status: str
    order: OrderRead

class PaymentDetails(BaseModel):
    order_id: int
    order_number: str
    total_amount: float
    payment_status: str
    payment_method: str
    transactions: list[PaymentRead]
