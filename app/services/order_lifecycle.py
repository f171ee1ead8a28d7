"""
Order Lifecycle Rules
Status and payment state machines plus the derived kitchen, payment and sales views
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from app.core.exceptions import IllegalTransitionError
from app.models.schemas import (
    Order, OrderStatus, PaymentMethod, PaymentStatus, round_money, utc_now
)


# Forward moves along pending -> preparing -> ready -> dispatched, skips included.
# Any non-terminal status may be cancelled.
ALLOWED_STATUS_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DISPATCHED, OrderStatus.CANCELLED
    }),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.DISPATCHED, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DISPATCHED, OrderStatus.CANCELLED}),
    OrderStatus.DISPATCHED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

ALLOWED_PAYMENT_TRANSITIONS: Dict[PaymentStatus, frozenset] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PROCESSING, PaymentStatus.PAID}),
    PaymentStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DISPATCHED, OrderStatus.CANCELLED})

KITCHEN_BUCKETS = (
    OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DISPATCHED
)

# Provider payment states as reported by MercadoPago
PROVIDER_PAYMENT_STATUS_MAP: Dict[str, PaymentStatus] = {
    "approved": PaymentStatus.PAID,
    "pending": PaymentStatus.PROCESSING,
    "in_process": PaymentStatus.PROCESSING,
    "in_mediation": PaymentStatus.PROCESSING,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
}


# =============================================================================
# PREDICATES
# =============================================================================

def is_ready_to_cook(order: Order) -> bool:
    """Cash orders are cookable at once; online orders only once paid."""
    return order.payment_method != PaymentMethod.MERCADOPAGO or order.payment_status == PaymentStatus.PAID


def is_paid(order: Order) -> bool:
    """Revenue predicate: online orders count when paid, cash orders once dispatched."""
    if order.payment_method == PaymentMethod.MERCADOPAGO:
        return order.payment_status == PaymentStatus.PAID
    return order.status == OrderStatus.DISPATCHED


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_valid_status_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset())


def ensure_status_transition(order: Order, requested: OrderStatus) -> None:
    """Raise IllegalTransitionError unless ``order`` may move to ``requested``."""
    current = order.status
    if not is_valid_status_transition(current, requested):
        raise IllegalTransitionError(current.value, requested.value, machine="status")

    if requested != OrderStatus.CANCELLED and not is_ready_to_cook(order):
        raise IllegalTransitionError(
            current.value,
            requested.value,
            machine="status",
            reason=f"Order {order.id} is awaiting online payment and can only be cancelled",
        )


def ensure_payment_transition(current: PaymentStatus, requested: PaymentStatus) -> bool:
    """
    Validate a payment status move.

    Returns False for a repeat of the current status (a duplicate provider
    notification), True for an allowed move, and raises otherwise.
    """
    if current == requested:
        return False
    if requested not in ALLOWED_PAYMENT_TRANSITIONS.get(current, frozenset()):
        raise IllegalTransitionError(current.value, requested.value, machine="payment_status")
    return True


def map_provider_payment_status(provider_status: Optional[str]) -> Optional[PaymentStatus]:
    if not provider_status:
        return None
    return PROVIDER_PAYMENT_STATUS_MAP.get(provider_status.lower())


# =============================================================================
# DERIVED VIEWS
# =============================================================================

def partition_orders(orders: Iterable[Order]) -> Tuple[List[Order], List[Order]]:
    """
    Split non-cancelled orders into (awaiting_payment, actionable).

    The two lists are disjoint and together cover every non-cancelled order.
    """
    awaiting: List[Order] = []
    actionable: List[Order] = []
    for order in orders:
        if order.status == OrderStatus.CANCELLED:
            continue
        if is_ready_to_cook(order):
            actionable.append(order)
        else:
            awaiting.append(order)
    return awaiting, actionable


class KitchenTicket(BaseModel):
    order: Order
    minutes_in_status: int
    is_late: bool
    is_snoozed: bool


class KitchenQueue(BaseModel):
    """Actionable orders keyed by kitchen status"""
    buckets: Dict[OrderStatus, List[KitchenTicket]] = Field(
        default_factory=lambda: {status: [] for status in KITCHEN_BUCKETS}
    )

    def __getitem__(self, status: OrderStatus) -> List[KitchenTicket]:
        return self.buckets[status]

    def order_ids(self, status: OrderStatus) -> List[str]:
        return [ticket.order.id for ticket in self.buckets[status]]


def build_kitchen_queue(
    orders: Iterable[Order],
    now: Optional[datetime] = None,
    late_after_minutes: int = 10,
) -> KitchenQueue:
    """
    Bucket the actionable orders by status for the kitchen display.

    Inside a bucket snoozed orders go last, then oldest first.
    """
    now = now or utc_now()
    _, actionable = partition_orders(orders)

    queue = KitchenQueue()
    for order in actionable:
        if order.status not in queue.buckets:
            continue
        minutes = max(0, int((now - order.status_changed_at).total_seconds() // 60))
        queue.buckets[order.status].append(KitchenTicket(
            order=order,
            minutes_in_status=minutes,
            is_late=order.status not in TERMINAL_STATUSES and minutes >= late_after_minutes,
            is_snoozed=order.is_snoozed(now),
        ))

    for tickets in queue.buckets.values():
        tickets.sort(key=lambda ticket: (ticket.is_snoozed, ticket.order.created_at))
    return queue


class SalesStats(BaseModel):
    start: datetime
    end: datetime
    revenue: float = 0.0
    order_count: int = 0
    paid_order_count: int = 0
    average_ticket: float = 0.0
    revenue_by_payment_method: Dict[str, float] = Field(default_factory=dict)


def compute_sales_stats(orders: Iterable[Order], start: datetime, end: datetime) -> SalesStats:
    """Revenue over ``start <= created_at < end`` counting only paid orders."""
    stats = SalesStats(start=start, end=end)
    by_method: Dict[str, float] = {}

    for order in orders:
        if not (start <= order.created_at < end):
            continue
        if order.status != OrderStatus.CANCELLED:
            stats.order_count += 1
        if not is_paid(order):
            continue
        stats.paid_order_count += 1
        stats.revenue += order.total
        method = order.payment_method.value
        by_method[method] = by_method.get(method, 0.0) + order.total

    stats.revenue = round_money(stats.revenue)
    stats.revenue_by_payment_method = {method: round_money(total) for method, total in by_method.items()}
    if stats.paid_order_count:
        stats.average_ticket = round_money(stats.revenue / stats.paid_order_count)
    return stats


def period_bounds(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Start and end of a named reporting period containing ``now``.

    ``today`` starts at midnight, ``week`` on Monday, ``month`` on the 1st.
    """
    now = now or utc_now()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "today":
        return day_start, day_start + timedelta(days=1)
    if period == "week":
        start = day_start - timedelta(days=day_start.weekday())
        return start, start + timedelta(days=7)
    if period == "month":
        start = day_start.replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end
    raise ValueError(f"Unknown period '{period}'")
