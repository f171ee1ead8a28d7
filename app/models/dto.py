"""
Data Transfer Objects (DTOs) for the Order & Cart Engine
API request/response objects for carts, checkout, the kitchen queue and payments
"""
from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone

# Import enums from schemas to avoid duplication
from app.models.schemas import (
    OrderStatus, PaymentStatus, PaymentMethod, DeliveryType,
    Cart, CartLine, CustomerInfo, Order, OrderItem
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# BASE DTOs
# =============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common configuration"""
    class Config:
        from_attributes = True


# =============================================================================
# CART DTOs
# =============================================================================

class CartAddItemDTO(BaseDTO):
    """Add one unit, or a weight for items sold by weight"""
    item_id: str = Field(..., min_length=1)
    weight: Optional[float] = Field(None, allow_inf_nan=False, description="Weight to add, required for items sold by weight")

class CartSetQuantityDTO(BaseDTO):
    """Overwrite the quantity of a unit-priced line; zero or less removes the line"""
    quantity: int

class CartSetWeightDTO(BaseDTO):
    """Overwrite a line weight; zero or less removes the line"""
    weight: float = Field(..., allow_inf_nan=False)

class CartLineResponseDTO(BaseDTO):
    """Cart line with its derived subtotal"""
    item_id: str
    name: str
    unit_price: float
    quantity: int
    sold_by_weight: bool
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    image_url: Optional[str] = None
    category_id: Optional[str] = None
    subtotal: float

    @classmethod
    def from_line(cls, line: CartLine) -> "CartLineResponseDTO":
        return cls(**line.model_dump(), subtotal=line.subtotal)

class CartResponseDTO(BaseDTO):
    """Cart contents and live total"""
    tenant_id: str
    session_id: str
    lines: List[CartLineResponseDTO] = Field(default_factory=list)
    total: float = 0.0
    item_count: int = 0

    @classmethod
    def from_cart(cls, cart: Cart, session_id: str) -> "CartResponseDTO":
        return cls(
            tenant_id=cart.tenant_id,
            session_id=session_id,
            lines=[CartLineResponseDTO.from_line(line) for line in cart.lines],
            total=cart.total,
            item_count=len(cart.lines),
        )


# =============================================================================
# CHECKOUT DTOs
# =============================================================================

class CheckoutRequestDTO(BaseDTO):
    """
    Customer details submitted at checkout.

    Fields are deliberately loose here; the validation service checks them
    all together so every violated field is reported at once.
    """
    session_id: str = Field(..., min_length=1, description="Cart session to check out")
    name: str = ""
    phone: str = ""
    email: Optional[str] = None
    delivery_type: DeliveryType = DeliveryType.PICKUP
    address: Optional[str] = None
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH

    def to_customer(self) -> CustomerInfo:
        return CustomerInfo(**self.model_dump(exclude={"session_id"}))

class CheckoutResultDTO(BaseDTO):
    """Outcome of a checkout attempt"""
    success: bool
    order_id: Optional[str] = None
    order_number: Optional[int] = None
    checkout_url: Optional[str] = None
    is_demo: Optional[bool] = None
    message: Optional[str] = None


# =============================================================================
# ORDER DTOs
# =============================================================================

class OrderItemResponseDTO(BaseDTO):
    """Order item response DTO"""
    id: Optional[str] = None
    menu_item_id: str
    name: str
    price: float
    quantity: int
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    subtotal: float

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemResponseDTO":
        return cls(**item.model_dump(exclude={"order_id", "description"}))

class OrderResponseDTO(BaseDTO):
    """Complete order response DTO"""
    id: str
    order_number: Optional[int] = None
    customer: CustomerInfo
    items: List[OrderItemResponseDTO]
    subtotal: float
    delivery_fee: float
    discount: float
    total: float
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    ready_to_cook: bool
    is_paid: bool
    created_at: datetime
    status_changed_at: datetime
    snoozed_until: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order, ready_to_cook: bool, is_paid: bool) -> "OrderResponseDTO":
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer=order.customer,
            items=[OrderItemResponseDTO.from_item(item) for item in order.items],
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            discount=order.discount,
            total=order.total,
            status=order.status,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            ready_to_cook=ready_to_cook,
            is_paid=is_paid,
            created_at=order.created_at,
            status_changed_at=order.status_changed_at,
            snoozed_until=order.snoozed_until,
        )

class OrderStatusUpdateDTO(BaseDTO):
    """Requested next kitchen status"""
    status: OrderStatus

class SnoozeRequestDTO(BaseDTO):
    """Push an order to the back of its bucket for a while"""
    minutes: int = Field(..., ge=1, le=240)


# =============================================================================
# KITCHEN & ANALYTICS DTOs
# =============================================================================

class KitchenTicketDTO(BaseDTO):
    """Kitchen display entry"""
    order: OrderResponseDTO
    minutes_in_status: int
    is_late: bool
    is_snoozed: bool

class KitchenQueueDTO(BaseDTO):
    """Actionable orders bucketed by status"""
    pending: List[KitchenTicketDTO] = Field(default_factory=list)
    preparing: List[KitchenTicketDTO] = Field(default_factory=list)
    ready: List[KitchenTicketDTO] = Field(default_factory=list)
    dispatched: List[KitchenTicketDTO] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utc_now)

class SalesStatsDTO(BaseDTO):
    """Revenue over a period, counting only paid orders"""
    start: datetime
    end: datetime
    revenue: float = 0.0
    order_count: int = 0
    paid_order_count: int = 0
    average_ticket: float = 0.0
    revenue_by_payment_method: Dict[str, float] = Field(default_factory=dict)


# =============================================================================
# PAYMENT DTOs
# =============================================================================

class PaymentLineDTO(BaseDTO):
    """One priced line sent to the payment provider"""
    title: str = Field(..., min_length=1, max_length=256)
    quantity: int = Field(..., ge=1, le=999)
    unit_price: float = Field(..., ge=0, le=10_000_000)

class PaymentCheckoutRequestDTO(BaseDTO):
    """Everything needed to ask the provider for a checkout link"""
    order_id: str
    tenant_id: str
    tenant_name: Optional[str] = None
    access_token: Optional[str] = None
    items: List[PaymentLineDTO] = Field(..., min_length=1)
    payer_name: str
    payer_email: Optional[str] = None
    payer_phone: Optional[str] = None
    success_url: str
    failure_url: str
    pending_url: str

class PaymentCheckoutResultDTO(BaseDTO):
    """Checkout link returned by the provider, or a demo marker"""
    preference_id: Optional[str] = None
    checkout_url: Optional[str] = None
    sandbox_url: Optional[str] = None
    demo: bool = False


# =============================================================================
# RESPONSE DTOs
# =============================================================================

class ApiResponseDTO(BaseDTO):
    """Standard API response DTO"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None
    timestamp: datetime = Field(default_factory=_utc_now)

class ErrorResponseDTO(BaseDTO):
    """Error response DTO"""
    success: bool = False
    error: str
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_utc_now)
