"""
Order Persistence Gateway
Tenant-scoped reads and writes of orders and order items, plus read-only catalog lookups
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from app.core.exceptions import APIError, OrderNotFoundError, PersistenceError, RecordMappingError
from app.core.logging_config import EnhancedLoggerMixin
from app.database.firestore import (
    ORDERS_COLLECTION, ORDER_ITEMS_COLLECTION, MENU_ITEMS_COLLECTION,
    TENANTS_COLLECTION, COUNTERS_COLLECTION
)
from app.database.repository_manager import RepositoryManager
from app.models.schemas import (
    CartLine, MenuItem, Order, OrderItem, Tenant,
    order_from_record, order_item_from_record, order_item_record
)


class OrderGateway(EnhancedLoggerMixin):
    """
    Every call is filtered by tenant; an order owned by another tenant is
    reported exactly like a missing one. Storage failures surface as
    PersistenceError.
    """

    def __init__(self, repository_manager: RepositoryManager):
        self.repository_manager = repository_manager

    @property
    def orders(self):
        return self.repository_manager.get_repository(ORDERS_COLLECTION)

    @property
    def order_items(self):
        return self.repository_manager.get_repository(ORDER_ITEMS_COLLECTION)

    @property
    def counters(self):
        return self.repository_manager.get_repository(COUNTERS_COLLECTION)

    async def _call(self, operation: str, coro) -> Any:
        try:
            return await coro
        except APIError:
            raise
        except Exception as e:
            self.log_error(e, operation)
            raise PersistenceError(operation, e) from e

    async def next_order_number(self, tenant_id: str) -> int:
        return await self._call("next_order_number", self.counters.next_sequence(f"orders_{tenant_id}"))

    async def create_order(self, record: Dict[str, Any]) -> Order:
        """Insert the order row and return it without items"""
        created = await self._call("create_order", self.orders.create(record))
        order = order_from_record(created)
        self.log_operation("create_order", tenant_id=order.tenant_id, order_id=order.id)
        return order

    async def create_order_items(self, order: Order, lines: List[CartLine]) -> List[OrderItem]:
        records = [order_item_record(order.id, order.tenant_id, line) for line in lines]
        created = await self._call("create_order_items", self.order_items.create_batch(records))
        return [order_item_from_record(record) for record in created]

    async def _load_items(self, tenant_id: str, order_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        records = await self._call(
            "load_order_items",
            self.order_items.query_in("order_id", order_ids, filters=[("tenant_id", "==", tenant_id)])
        )
        grouped: Dict[str, List[Dict[str, Any]]] = {order_id: [] for order_id in order_ids}
        for record in records:
            grouped.setdefault(record["order_id"], []).append(record)
        return grouped

    async def _get_record(self, tenant_id: str, order_id: str) -> Dict[str, Any]:
        record = await self._call("get_order", self.orders.get_by_id(order_id))
        if record is None or record.get("tenant_id") != tenant_id:
            raise OrderNotFoundError(order_id)
        return record

    async def get_order(self, tenant_id: str, order_id: str) -> Order:
        record = await self._get_record(tenant_id, order_id)
        items = await self._load_items(tenant_id, [order_id])
        return order_from_record(record, items.get(order_id))

    async def find_order(self, order_id: str) -> Optional[Order]:
        """Look an order up without knowing its tenant (payment notifications)"""
        record = await self._call("find_order", self.orders.get_by_id(order_id))
        if record is None:
            return None
        items = await self._load_items(record["tenant_id"], [order_id])
        return order_from_record(record, items.get(order_id))

    async def patch_order(self, tenant_id: str, order_id: str, fields: Dict[str, Any]) -> Order:
        """Apply a partial update to an order owned by ``tenant_id``"""
        await self._get_record(tenant_id, order_id)
        await self._call("patch_order", self.orders.update(order_id, fields))
        self.log_operation("patch_order", level="DEBUG", tenant_id=tenant_id, order_id=order_id,
                           fields=sorted(fields.keys()))
        return await self.get_order(tenant_id, order_id)

    async def list_orders(self, tenant_id: str, limit: int = 50) -> List[Order]:
        """Most recent orders first, items attached"""
        records = await self._call(
            "list_orders",
            self.orders.query([("tenant_id", "==", tenant_id)], order_by="created_at", limit=limit, descending=True)
        )
        if not records:
            return []

        items = await self._load_items(tenant_id, [record["id"] for record in records])
        return self._map_records(tenant_id, records, items, "list_orders")

    async def list_orders_between(self, tenant_id: str, start: datetime, end: datetime) -> List[Order]:
        """Every order created in ``start <= created_at < end``, oldest first, without items"""
        records = await self._call(
            "list_orders_between",
            self.orders.query(
                [("tenant_id", "==", tenant_id), ("created_at", ">=", start), ("created_at", "<", end)],
                order_by="created_at"
            )
        )
        return self._map_records(tenant_id, records or [], {}, "list_orders_between")

    def watch_orders(self, tenant_id: str, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` for any write to the tenant's orders; returns the unsubscribe function"""
        try:
            unsubscribe = self.orders.watch([("tenant_id", "==", tenant_id)], callback)
        except APIError:
            raise
        except Exception as e:
            self.log_error(e, "watch_orders", tenant_id=tenant_id)
            raise PersistenceError("watch_orders", e) from e
        self.log_operation("watch_orders", level="DEBUG", tenant_id=tenant_id)
        return unsubscribe

    def _map_records(self, tenant_id: str, records: List[Dict[str, Any]],
                     items: Dict[str, List[Dict[str, Any]]], operation: str) -> List[Order]:
        orders = []
        for record in records:
            try:
                orders.append(order_from_record(record, items.get(record["id"])))
            except RecordMappingError as e:
                # One unreadable row must not hide the rest of the list
                self.log_error(e, operation, level="WARNING", tenant_id=tenant_id, order_id=record.get("id"))
        return orders


class MenuCatalog(EnhancedLoggerMixin):
    """Read-only catalog lookups served through the repository cache"""

    def __init__(self, repository_manager: RepositoryManager):
        self.repository_manager = repository_manager

    async def get_item(self, tenant_id: str, item_id: str) -> Optional[MenuItem]:
        try:
            record = await self.repository_manager.cached_get_by_id(MENU_ITEMS_COLLECTION, item_id)
        except Exception as e:
            self.log_error(e, "get_menu_item")
            raise PersistenceError("get_menu_item", e) from e

        if record is None or record.get("tenant_id") != tenant_id:
            return None
        return MenuItem(**record)

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        try:
            record = await self.repository_manager.cached_get_by_id(TENANTS_COLLECTION, tenant_id)
        except Exception as e:
            self.log_error(e, "get_tenant")
            raise PersistenceError("get_tenant", e) from e
        return Tenant(**record) if record else None
