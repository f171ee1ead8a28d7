"""
Cart Service
Cart aggregation rules and the tenant-scoped cart store
"""
import math
from typing import List, Optional

from app.core.cache_service import CacheService, cart_key
from app.core.exceptions import CommonErrors, OrderValidationError
from app.core.logging_config import EnhancedLoggerMixin
from app.database.order_gateway import MenuCatalog
from app.models.schemas import Cart, CartLine, MenuItem


class CartAggregator:
    """
    Mutations of a single cart.

    Lines are keyed by catalog item id and keep the pricing mode of the item
    that created them: unit-priced lines count quantity, weight-priced lines
    accumulate weight. The total is always derived from the lines.
    """

    def __init__(self, cart: Cart):
        self.cart = cart

    def add_item(self, item: MenuItem, weight: Optional[float] = None) -> CartLine:
        if not item.is_available:
            raise OrderValidationError.for_field("item_id", f"{item.name} is not available")

        line = self.cart.find_line(item.id)
        sold_by_weight = line.sold_by_weight if line is not None else item.sold_by_weight

        if sold_by_weight:
            if weight is None or not math.isfinite(weight) or weight <= 0:
                raise OrderValidationError.for_field("weight", f"{item.name} is sold by weight; a positive weight is required")
            if line is None:
                line = CartLine.from_menu_item(item, weight=weight)
                self.cart.lines.append(line)
            else:
                line.weight = (line.weight or 0) + weight
            return line

        if line is None:
            line = CartLine.from_menu_item(item)
            self.cart.lines.append(line)
        else:
            line.quantity += 1
        return line

    def remove_item(self, item_id: str) -> None:
        self.cart.lines = [line for line in self.cart.lines if line.item_id != item_id]

    def set_quantity(self, item_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(item_id)
            return
        line = self.cart.find_line(item_id)
        if line is not None and not line.sold_by_weight:
            line.quantity = quantity

    def set_weight(self, item_id: str, weight: float) -> None:
        if not math.isfinite(weight):
            raise OrderValidationError.for_field("weight", "Weight must be a finite number")
        if weight <= 0:
            self.remove_item(item_id)
            return
        line = self.cart.find_line(item_id)
        if line is not None and line.sold_by_weight:
            line.weight = weight

    def clear(self) -> None:
        self.cart.lines = []

    def total(self) -> float:
        return self.cart.total


class TenantCartStore:
    """Carts kept per tenant and customer session; last write wins"""

    def __init__(self, cache_service: CacheService, ttl: Optional[int] = None):
        self.cache = cache_service.cart_cache
        self.ttl = ttl

    async def get(self, tenant_id: str, session_id: str) -> List[CartLine]:
        stored = await self.cache.get(cart_key(tenant_id, session_id))
        return [CartLine(**line) for line in (stored or [])]

    async def set(self, tenant_id: str, session_id: str, lines: List[CartLine]) -> None:
        if not lines:
            await self.clear(tenant_id, session_id)
            return
        await self.cache.set(cart_key(tenant_id, session_id), [line.model_dump() for line in lines], self.ttl)

    async def clear(self, tenant_id: str, session_id: str) -> None:
        await self.cache.delete(cart_key(tenant_id, session_id))


class CartService(EnhancedLoggerMixin):
    """Load, mutate and persist customer carts"""

    def __init__(self, store: TenantCartStore, catalog: MenuCatalog):
        self.store = store
        self.catalog = catalog

    async def get_cart(self, tenant_id: str, session_id: str) -> Cart:
        return Cart(tenant_id=tenant_id, lines=await self.store.get(tenant_id, session_id))

    async def _save(self, session_id: str, cart: Cart) -> Cart:
        await self.store.set(cart.tenant_id, session_id, cart.lines)
        return cart

    async def add_item(self, tenant_id: str, session_id: str, item_id: str, weight: Optional[float] = None) -> Cart:
        item = await self.catalog.get_item(tenant_id, item_id)
        if item is None:
            raise CommonErrors.not_found("Menu item")

        cart = await self.get_cart(tenant_id, session_id)
        CartAggregator(cart).add_item(item, weight)
        self.log_operation("cart_add_item", level="DEBUG", tenant_id=tenant_id, item_id=item_id)
        return await self._save(session_id, cart)

    async def remove_item(self, tenant_id: str, session_id: str, item_id: str) -> Cart:
        cart = await self.get_cart(tenant_id, session_id)
        CartAggregator(cart).remove_item(item_id)
        return await self._save(session_id, cart)

    async def set_quantity(self, tenant_id: str, session_id: str, item_id: str, quantity: int) -> Cart:
        cart = await self.get_cart(tenant_id, session_id)
        CartAggregator(cart).set_quantity(item_id, quantity)
        return await self._save(session_id, cart)

    async def set_weight(self, tenant_id: str, session_id: str, item_id: str, weight: float) -> Cart:
        cart = await self.get_cart(tenant_id, session_id)
        CartAggregator(cart).set_weight(item_id, weight)
        return await self._save(session_id, cart)

    async def clear(self, tenant_id: str, session_id: str) -> Cart:
        await self.store.clear(tenant_id, session_id)
        return Cart(tenant_id=tenant_id)
