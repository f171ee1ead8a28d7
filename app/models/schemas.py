"""
Order & Cart Collection Schemas
Storage entity schemas and the explicit row mapping between stored records and orders
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum

from app.core.exceptions import RecordMappingError


ORDER_SCHEMA_VERSION = 1


# =============================================================================
# ENUMS (Shared across database and DTOs)
# =============================================================================

class OrderStatus(str, Enum):
    """Kitchen progress of an order"""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DISPATCHED = "dispatched"
    CANCELLED = "cancelled"

class PaymentStatus(str, Enum):
    """Payment status"""
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class PaymentMethod(str, Enum):
    """Payment methods"""
    CASH = "cash"
    MERCADOPAGO = "mercadopago"

class DeliveryType(str, Enum):
    """How the customer receives the order"""
    PICKUP = "pickup"
    DELIVERY = "delivery"


# =============================================================================
# BASE MODELS
# =============================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    class Config:
        from_attributes = True
        use_enum_values = False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_money(amount: float) -> float:
    return round(float(amount), 2)


# =============================================================================
# CATALOG
# =============================================================================

class Tenant(BaseSchema):
    """Restaurant owning a menu, carts and orders"""
    id: str
    name: str = Field(..., min_length=1, max_length=100)
    mercadopago_access_token: Optional[str] = None
    is_active: bool = Field(default=True)


class MenuItem(BaseSchema):
    """Read-only projection of a catalog item"""
    id: str
    tenant_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: float = Field(..., ge=0)
    sold_by_weight: bool = Field(default=False)
    weight_unit: str = Field(default="kg", max_length=10)
    image_url: Optional[str] = None
    category_id: Optional[str] = None
    is_available: bool = Field(default=True)


# =============================================================================
# CART
# =============================================================================

class CartLine(BaseSchema):
    """One cart position; pricing mode is fixed by the catalog item"""
    item_id: str
    name: str
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)
    sold_by_weight: bool = Field(default=False)
    weight: Optional[float] = Field(None, gt=0)
    weight_unit: Optional[str] = None
    image_url: Optional[str] = None
    category_id: Optional[str] = None

    @property
    def subtotal(self) -> float:
        if self.sold_by_weight:
            return round_money(self.unit_price * (self.weight or 0))
        return round_money(self.unit_price * self.quantity)

    @classmethod
    def from_menu_item(cls, item: MenuItem, weight: Optional[float] = None) -> "CartLine":
        return cls(
            item_id=item.id,
            name=item.name,
            unit_price=item.price,
            quantity=1,
            sold_by_weight=item.sold_by_weight,
            weight=weight if item.sold_by_weight else None,
            weight_unit=item.weight_unit if item.sold_by_weight else None,
            image_url=item.image_url,
            category_id=item.category_id,
        )


class Cart(BaseSchema):
    """Lines a customer is assembling for one tenant"""
    tenant_id: str
    lines: List[CartLine] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return round_money(sum(line.subtotal for line in self.lines))

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def find_line(self, item_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None


# =============================================================================
# ORDERS
# =============================================================================

class CustomerInfo(BaseSchema):
    """Contact and fulfilment details captured at checkout"""
    name: str = ""
    phone: str = ""
    email: Optional[str] = None
    delivery_type: DeliveryType = DeliveryType.PICKUP
    address: Optional[str] = None
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH


class OrderItem(BaseSchema):
    """Frozen copy of a cart line"""
    id: Optional[str] = None
    order_id: str
    menu_item_id: str
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    subtotal: float = Field(..., ge=0)


class Order(BaseSchema):
    """Order collection schema"""
    id: str
    tenant_id: str
    order_number: Optional[int] = None
    customer: CustomerInfo
    items: List[OrderItem] = Field(default_factory=list)
    subtotal: float = Field(..., ge=0)
    delivery_fee: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)
    total: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    mercadopago_preference_id: Optional[str] = None
    mercadopago_payment_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    status_changed_at: datetime
    snoozed_until: Optional[datetime] = None
    schema_version: int = ORDER_SCHEMA_VERSION

    def is_snoozed(self, now: Optional[datetime] = None) -> bool:
        if self.snoozed_until is None:
            return False
        return self.snoozed_until > (now or utc_now())


# =============================================================================
# ROW MAPPING
# =============================================================================

_REQUIRED_ORDER_FIELDS = ("id", "tenant_id", "status", "created_at", "total")
_REQUIRED_ITEM_FIELDS = ("order_id", "menu_item_id", "name", "price", "subtotal")


def _parse_datetime(value: Any, field: str, record_type: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise RecordMappingError(record_type, f"'{field}' is not a timestamp: {value!r}")
    else:
        raise RecordMappingError(record_type, f"'{field}' is not a timestamp: {value!r}")
    # Stored timestamps without zone are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_enum(enum_cls, value: Any, field: str, record_type: str, default=None):
    if value is None or value == "":
        if default is None:
            raise RecordMappingError(record_type, f"missing '{field}'")
        return default
    try:
        return enum_cls(value)
    except ValueError:
        raise RecordMappingError(record_type, f"unknown {field} {value!r}")


def _parse_amount(value: Any, field: str, record_type: str, default: Optional[float] = None) -> float:
    if value is None:
        if default is None:
            raise RecordMappingError(record_type, f"missing '{field}'")
        return default
    try:
        return round_money(float(value))
    except (TypeError, ValueError):
        raise RecordMappingError(record_type, f"'{field}' is not a number: {value!r}")


def _first_present(record: Dict[str, Any], *fields: str) -> Any:
    for field in fields:
        if record.get(field) is not None:
            return record[field]
    return None


def order_item_from_record(record: Dict[str, Any]) -> OrderItem:
    """Map a stored order_items row onto an OrderItem"""
    missing = [field for field in _REQUIRED_ITEM_FIELDS if record.get(field) is None]
    if missing:
        raise RecordMappingError("order_item", f"missing {', '.join(missing)}")

    weight = record.get("weight")
    return OrderItem(
        id=record.get("id"),
        order_id=record["order_id"],
        menu_item_id=record["menu_item_id"],
        name=record["name"],
        description=record.get("description"),
        price=_parse_amount(record["price"], "price", "order_item"),
        quantity=int(record.get("quantity") or 1),
        weight=float(weight) if weight is not None else None,
        weight_unit=record.get("weight_unit"),
        subtotal=_parse_amount(record["subtotal"], "subtotal", "order_item"),
    )


def order_from_record(record: Dict[str, Any], item_records: Optional[List[Dict[str, Any]]] = None) -> Order:
    """
    Map a stored orders row (flat customer columns) onto an Order.

    Every field is covered: optional columns fall back to fixed defaults
    (payment_method -> cash, payment_status -> pending, status_changed_at ->
    created_at, delivery_fee and discount -> 0). Missing required columns,
    unknown enum values and rows written by a newer schema raise
    RecordMappingError instead of producing a partially filled order.
    """
    missing = [field for field in _REQUIRED_ORDER_FIELDS if record.get(field) is None]
    if missing:
        raise RecordMappingError("order", f"missing {', '.join(missing)}")

    version = int(record.get("schema_version") or ORDER_SCHEMA_VERSION)
    if version > ORDER_SCHEMA_VERSION:
        raise RecordMappingError("order", f"schema version {version} is newer than {ORDER_SCHEMA_VERSION}")

    created_at = _parse_datetime(record["created_at"], "created_at", "order")
    status_changed_at = _parse_datetime(record.get("status_changed_at"), "status_changed_at", "order") or created_at

    customer = CustomerInfo(
        name=record.get("customer_name") or "",
        phone=record.get("customer_phone") or "",
        email=record.get("customer_email") or None,
        delivery_type=_parse_enum(DeliveryType, record.get("delivery_type"), "delivery_type", "order", DeliveryType.PICKUP),
        address=record.get("delivery_address"),
        notes=record.get("notes"),
        payment_method=_parse_enum(PaymentMethod, record.get("payment_method"), "payment_method", "order", PaymentMethod.CASH),
    )

    order_number = record.get("order_number")
    return Order(
        id=record["id"],
        tenant_id=record["tenant_id"],
        order_number=int(order_number) if order_number is not None else None,
        customer=customer,
        items=[order_item_from_record(item) for item in (item_records or [])],
        subtotal=_parse_amount(_first_present(record, "subtotal", "total"), "subtotal", "order"),
        delivery_fee=_parse_amount(record.get("delivery_fee"), "delivery_fee", "order", 0.0),
        discount=_parse_amount(record.get("discount"), "discount", "order", 0.0),
        total=_parse_amount(record["total"], "total", "order"),
        status=_parse_enum(OrderStatus, record["status"], "status", "order"),
        payment_method=customer.payment_method,
        payment_status=_parse_enum(PaymentStatus, record.get("payment_status"), "payment_status", "order", PaymentStatus.PENDING),
        mercadopago_preference_id=record.get("mercadopago_preference_id"),
        mercadopago_payment_id=record.get("mercadopago_payment_id"),
        created_at=created_at,
        updated_at=_parse_datetime(record.get("updated_at"), "updated_at", "order"),
        status_changed_at=status_changed_at,
        snoozed_until=_parse_datetime(record.get("snoozed_until"), "snoozed_until", "order"),
        schema_version=ORDER_SCHEMA_VERSION,
    )


def order_to_record(order: Order) -> Dict[str, Any]:
    """Flatten an Order into the stored orders row, without its items"""
    customer = order.customer
    return {
        "id": order.id,
        "tenant_id": order.tenant_id,
        "order_number": order.order_number,
        "customer_name": customer.name,
        "customer_phone": customer.phone,
        "customer_email": customer.email,
        "delivery_type": customer.delivery_type.value,
        "delivery_address": customer.address,
        "notes": customer.notes,
        "status": order.status.value,
        "payment_method": order.payment_method.value,
        "payment_status": order.payment_status.value,
        "mercadopago_preference_id": order.mercadopago_preference_id,
        "mercadopago_payment_id": order.mercadopago_payment_id,
        "subtotal": order.subtotal,
        "delivery_fee": order.delivery_fee,
        "discount": order.discount,
        "total": order.total,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "status_changed_at": order.status_changed_at,
        "snoozed_until": order.snoozed_until,
        "schema_version": order.schema_version,
    }


def new_order_record(
    tenant_id: str,
    customer: CustomerInfo,
    subtotal: float,
    order_number: Optional[int] = None,
    delivery_fee: float = 0.0,
    discount: float = 0.0,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Row for a freshly submitted order: pending in the kitchen and unpaid"""
    now = now or utc_now()
    return {
        "tenant_id": tenant_id,
        "order_number": order_number,
        "customer_name": customer.name,
        "customer_phone": customer.phone,
        "customer_email": customer.email,
        "delivery_type": customer.delivery_type.value,
        "delivery_address": customer.address,
        "notes": customer.notes,
        "status": OrderStatus.PENDING.value,
        "payment_method": customer.payment_method.value,
        "payment_status": PaymentStatus.PENDING.value,
        "mercadopago_preference_id": None,
        "mercadopago_payment_id": None,
        "subtotal": round_money(subtotal),
        "delivery_fee": round_money(delivery_fee),
        "discount": round_money(discount),
        "total": round_money(subtotal + delivery_fee - discount),
        "created_at": now,
        "status_changed_at": now,
        "snoozed_until": None,
        "schema_version": ORDER_SCHEMA_VERSION,
    }


def order_item_record(order_id: str, tenant_id: str, line: CartLine) -> Dict[str, Any]:
    """Freeze a cart line into an order_items row"""
    return {
        "order_id": order_id,
        "tenant_id": tenant_id,
        "menu_item_id": line.item_id,
        "name": line.name,
        "price": line.unit_price,
        "quantity": line.quantity,
        "weight": line.weight if line.sold_by_weight else None,
        "weight_unit": line.weight_unit if line.sold_by_weight else None,
        "subtotal": line.subtotal,
    }
