"""
Order Engine
Tenant-scoped checkout, kitchen status transitions, payment reconciliation and queue views
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import Settings
from app.core.exceptions import (
    IllegalTransitionError, OrderNotFoundError, PaymentProviderError, PersistenceError
)
from app.core.logging_config import EnhancedLoggerMixin
from app.core.logging_middleware import BusinessLogger, get_business_logger
from app.database.order_gateway import MenuCatalog, OrderGateway
from app.models.dto import (
    CheckoutResultDTO, PaymentCheckoutRequestDTO, PaymentLineDTO
)
from app.models.schemas import (
    Cart, CartLine, CustomerInfo, DeliveryType, Order, OrderStatus, PaymentMethod,
    PaymentStatus, new_order_record, utc_now
)
from app.services.cart_service import CartService
from app.services.order_lifecycle import (
    KitchenQueue, SalesStats, build_kitchen_queue, compute_sales_stats,
    ensure_payment_transition, ensure_status_transition, is_terminal, map_provider_payment_status,
    partition_orders
)
from app.services.order_sync_service import OrderSyncService
from app.services.payment_service import PaymentService
from app.services.validation_service import ValidationService


def payment_lines(lines: List[CartLine]) -> List[PaymentLineDTO]:
    """Cart lines as provider items; weight-sold lines become one unit at the line subtotal"""
    result = []
    for line in lines:
        if line.sold_by_weight:
            result.append(PaymentLineDTO(
                title=f"{line.name} ({line.weight:g} {line.weight_unit})",
                quantity=1,
                unit_price=line.subtotal,
            ))
        else:
            result.append(PaymentLineDTO(title=line.name, quantity=line.quantity, unit_price=line.unit_price))
    return result


class OrderEngine(EnhancedLoggerMixin):
    """
    All order operations of one tenant.

    An engine is built per request for the tenant in scope; it holds no
    cart or order state of its own. Carts live in the cart store keyed by
    tenant and session, orders in the persistence gateway, and the current
    order list in the sync service.
    """

    def __init__(
        self,
        tenant_id: Optional[str],
        gateway: OrderGateway,
        catalog: MenuCatalog,
        cart_service: CartService,
        payment_service: PaymentService,
        sync_service: OrderSyncService,
        validation_service: ValidationService,
        settings: Settings,
        business_logger: Optional[BusinessLogger] = None,
    ):
        self.tenant_id = tenant_id
        self.gateway = gateway
        self.catalog = catalog
        self.cart_service = cart_service
        self.payment_service = payment_service
        self.sync_service = sync_service
        self.validation_service = validation_service
        self.settings = settings
        self.business_logger = business_logger or get_business_logger()

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    async def submit_checkout(self, session_id: str, customer: CustomerInfo) -> CheckoutResultDTO:
        """
        Turn the session's cart into a persisted order.

        Validation problems raise OrderValidationError before anything is
        written. Storage failures come back as an unsuccessful result with the
        cart left intact. A failed payment link is logged and the order is kept.
        """
        if not self.tenant_id:
            return CheckoutResultDTO(success=False, message="No restaurant selected")

        cart = await self.cart_service.get_cart(self.tenant_id, session_id)
        customer = self.validation_service.validate_checkout(cart, customer)
        if customer.delivery_type == DeliveryType.PICKUP:
            customer = customer.model_copy(update={"address": self.settings.PICKUP_ADDRESS_LABEL})

        try:
            order_number = await self.gateway.next_order_number(self.tenant_id)
            order = await self.gateway.create_order(new_order_record(
                self.tenant_id, customer, cart.total, order_number=order_number
            ))
        except PersistenceError as e:
            self.log_error(e, "submit_checkout", tenant_id=self.tenant_id)
            return CheckoutResultDTO(success=False, message="The order could not be saved, please try again")

        try:
            order.items = await self.gateway.create_order_items(order, cart.lines)
        except PersistenceError as e:
            # The order row stays behind without items
            self.log_error(e, "create_order_items", tenant_id=self.tenant_id, order_id=order.id)
            return CheckoutResultDTO(
                success=False, order_id=order.id,
                message="The order items could not be saved, please try again"
            )

        result = CheckoutResultDTO(
            success=True, order_id=order.id, order_number=order.order_number, message="Order placed"
        )
        if customer.payment_method == PaymentMethod.MERCADOPAGO:
            await self._start_online_payment(order, cart, customer, result)

        await self.cart_service.clear(self.tenant_id, session_id)
        await self._refresh()

        self.business_logger.log_order_placed(
            self.tenant_id, order.id, order.order_number, order.total,
            order.payment_method.value, len(order.items)
        )
        return result

    async def _start_online_payment(self, order: Order, cart: Cart, customer: CustomerInfo,
                                    result: CheckoutResultDTO) -> None:
        fields: Dict[str, Any] = {"payment_status": PaymentStatus.PROCESSING.value}
        try:
            tenant = await self.catalog.get_tenant(self.tenant_id)
            checkout = await self.payment_service.create_checkout(PaymentCheckoutRequestDTO(
                order_id=order.id,
                tenant_id=self.tenant_id,
                tenant_name=tenant.name if tenant else None,
                access_token=tenant.mercadopago_access_token if tenant else None,
                items=payment_lines(cart.lines),
                payer_name=customer.name,
                payer_email=customer.email,
                payer_phone=customer.phone,
                **self._back_urls(order.id),
            ))
        except (PaymentProviderError, PersistenceError) as e:
            self.log_error(e, "create_payment_link", level="WARNING",
                           tenant_id=self.tenant_id, order_id=order.id)
            result.message = "Order placed; the online payment link could not be created"
        else:
            result.checkout_url = checkout.checkout_url
            result.is_demo = checkout.demo
            if checkout.preference_id:
                fields["mercadopago_preference_id"] = checkout.preference_id

        try:
            await self.gateway.patch_order(self.tenant_id, order.id, fields)
        except PersistenceError as e:
            self.log_error(e, "record_payment_link", tenant_id=self.tenant_id, order_id=order.id)

    def _back_urls(self, order_id: str) -> Dict[str, str]:
        base = self.settings.PUBLIC_BASE_URL.rstrip("/")
        target = f"{base}/{self.tenant_id}/order/{order_id}"
        return {
            "success_url": f"{target}?payment=success",
            "failure_url": f"{target}?payment=failure",
            "pending_url": f"{target}?payment=pending",
        }

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def advance_status(self, order_id: str, status: OrderStatus) -> Order:
        """Move an order along the kitchen status graph"""
        order = await self.gateway.get_order(self.tenant_id, order_id)
        ensure_status_transition(order, status)

        updated = await self.gateway.patch_order(self.tenant_id, order_id, {
            "status": status.value,
            "status_changed_at": utc_now(),
        })
        self.business_logger.log_status_change(self.tenant_id, order_id, order.status.value, status.value)
        await self._refresh()
        return updated

    async def cancel(self, order_id: str) -> Order:
        return await self.advance_status(order_id, OrderStatus.CANCELLED)

    async def snooze(self, order_id: str, minutes: int) -> Order:
        """Push an order behind the others in its kitchen bucket for ``minutes``"""
        order = await self.gateway.get_order(self.tenant_id, order_id)
        if is_terminal(order.status):
            raise IllegalTransitionError(
                order.status.value, "snoozed", reason=f"Order {order_id} is already {order.status.value}"
            )

        updated = await self.gateway.patch_order(self.tenant_id, order_id, {
            "snoozed_until": utc_now() + timedelta(minutes=minutes),
        })
        await self._refresh()
        return updated

    async def apply_payment_status(self, order_id: str, status: PaymentStatus,
                                   payment_id: Optional[str] = None) -> Order:
        """
        Record a payment status reported by the provider.

        Repeats of the current status are accepted without a write.
        """
        order = await self.gateway.get_order(self.tenant_id, order_id)
        if not ensure_payment_transition(order.payment_status, status):
            self.log_operation("payment_status_unchanged", level="DEBUG",
                               tenant_id=self.tenant_id, order_id=order_id, payment_status=status.value)
            return order

        fields: Dict[str, Any] = {"payment_status": status.value}
        if payment_id:
            fields["mercadopago_payment_id"] = payment_id
        updated = await self.gateway.patch_order(self.tenant_id, order_id, fields)

        self.business_logger.log_payment_update(
            self.tenant_id, order_id, order.payment_status.value, status.value, payment_id
        )
        await self._refresh()
        return updated

    # =========================================================================
    # VIEWS
    # =========================================================================

    async def _refresh(self) -> None:
        try:
            await self.sync_service.refresh(self.tenant_id)
        except PersistenceError as e:
            # The poll picks the change up later
            self.log_error(e, "refresh_orders", level="WARNING", tenant_id=self.tenant_id)

    async def refresh_orders(self) -> List[Order]:
        return await self.sync_service.refresh(self.tenant_id)

    async def list_orders(self, refresh: bool = False) -> List[Order]:
        return await self.sync_service.get_orders(self.tenant_id, refresh=refresh)

    async def get_order(self, order_id: str) -> Order:
        return await self.gateway.get_order(self.tenant_id, order_id)

    async def kitchen_queue(self, now: Optional[datetime] = None) -> KitchenQueue:
        orders = await self.list_orders()
        return build_kitchen_queue(orders, now, self.settings.KITCHEN_LATE_AFTER_MINUTES)

    async def awaiting_payment(self) -> List[Order]:
        awaiting, _ = partition_orders(await self.list_orders())
        return awaiting

    async def sales_stats(self, start: datetime, end: datetime) -> SalesStats:
        """Stats over every order in the window, independent of the list limit"""
        orders = await self.gateway.list_orders_between(self.tenant_id, start, end)
        return compute_sales_stats(orders, start, end)


class PaymentNotificationHandler(EnhancedLoggerMixin):
    """
    Applies provider payment notifications to orders.

    Notifications carry no tenant; the order named in the notification URL
    decides whose credentials are used to look the payment up.
    """

    def __init__(self, gateway: OrderGateway, catalog: MenuCatalog, payment_service: PaymentService,
                 engine_factory):
        self.gateway = gateway
        self.catalog = catalog
        self.payment_service = payment_service
        self.engine_factory = engine_factory

    @staticmethod
    def extract_payment_id(body: Dict[str, Any], query: Dict[str, str]) -> Optional[str]:
        data = body.get("data")
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])
        if body.get("id") and body.get("topic") == "payment":
            return str(body["id"])
        return query.get("data.id") or query.get("id")

    async def handle(self, body: Dict[str, Any], query: Dict[str, str]) -> Tuple[str, Optional[Order]]:
        """Returns an outcome label and the updated order, if any"""
        payment_id = self.extract_payment_id(body, query)
        if not payment_id:
            return "ignored_no_payment_id", None

        order_id = query.get("orderId")
        if not order_id:
            self.log_operation("payment_notification_without_order", level="WARNING", payment_id=payment_id)
            return "ignored_no_order_id", None

        order = await self.gateway.find_order(order_id)
        if order is None:
            self.log_operation("payment_notification_unknown_order", level="WARNING", order_id=order_id)
            return "ignored_unknown_order", None

        tenant = await self.catalog.get_tenant(order.tenant_id)
        if tenant is None or not tenant.mercadopago_access_token:
            return "ignored_no_credentials", None

        payment = await self.payment_service.fetch_payment(tenant.mercadopago_access_token, payment_id)
        reference = payment.get("external_reference")
        if reference and str(reference) != order_id:
            self.log_operation("payment_notification_reference_mismatch", level="WARNING",
                               order_id=order_id, external_reference=reference)
            return "ignored_reference_mismatch", None
        status = map_provider_payment_status(payment.get("status"))
        if status is None:
            self.log_operation("payment_notification_unmapped_status", level="INFO",
                               order_id=order_id, provider_status=payment.get("status"))
            return "ignored_unmapped_status", None

        engine: OrderEngine = self.engine_factory(order.tenant_id)
        try:
            updated = await engine.apply_payment_status(order_id, status, payment_id)
        except (IllegalTransitionError, OrderNotFoundError) as e:
            self.log_error(e, "apply_payment_notification", level="WARNING",
                           tenant_id=order.tenant_id, order_id=order_id)
            return "ignored_rejected", None
        return "applied", updated
