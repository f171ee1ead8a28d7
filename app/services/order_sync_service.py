"""
Order Sync Service
Per-tenant order list snapshots refreshed by full re-fetch on store changes, on demand and by fallback polling
"""
import asyncio
import hashlib
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from app.core.exceptions import PersistenceError
from app.core.logging_config import EnhancedLoggerMixin, tenant_id_var
from app.core.websocket_manager import ConnectionManager
from app.database.order_gateway import OrderGateway
from app.models.schemas import Order, utc_now


class OrderSnapshot(BaseModel):
    """The last fetched order list of one tenant"""
    tenant_id: str
    orders: List[Order] = Field(default_factory=list)
    fetched_at: datetime
    fingerprint: str


def fingerprint_orders(orders: List[Order]) -> str:
    digest = hashlib.sha1()
    for order in orders:
        digest.update(
            f"{order.id}|{order.status.value}|{order.payment_status.value}|"
            f"{order.status_changed_at.isoformat()}|{order.snoozed_until}|{len(order.items)};".encode()
        )
    return digest.hexdigest()


class OrderSyncService(EnhancedLoggerMixin):
    """
    Keeps each tenant's order list current.

    Explicit refreshes after engine mutations, change notifications and the
    periodic poll all end in ``refresh``, which replaces the whole snapshot;
    no deltas are merged. Subscribers are told when the list changed.
    """

    def __init__(self, gateway: OrderGateway, connection_manager: ConnectionManager,
                 list_limit: int = 50, poll_interval: float = 15.0):
        self.gateway = gateway
        self.connection_manager = connection_manager
        self.list_limit = list_limit
        self.poll_interval = poll_interval
        self._snapshots: Dict[str, OrderSnapshot] = {}
        self._polling_tasks: Dict[str, asyncio.Task] = {}
        self._watches: Dict[str, Callable[[], None]] = {}
        self._change_tasks: Set[asyncio.Task] = set()
        self._pending_changes: Set[str] = set()

    async def refresh(self, tenant_id: str) -> List[Order]:
        """Re-fetch the tenant's most recent orders and replace its snapshot"""
        orders = await self.gateway.list_orders(tenant_id, self.list_limit)
        snapshot = OrderSnapshot(
            tenant_id=tenant_id,
            orders=orders,
            fetched_at=utc_now(),
            fingerprint=fingerprint_orders(orders),
        )

        previous = self._snapshots.get(tenant_id)
        self._snapshots[tenant_id] = snapshot

        if previous is None or previous.fingerprint != snapshot.fingerprint:
            await self.connection_manager.send_orders_changed(tenant_id)
        return orders

    async def handle_change(self, tenant_id: str) -> List[Order]:
        """Entry point for store change notifications; the payload is not inspected"""
        return await self.refresh(tenant_id)

    def get_snapshot(self, tenant_id: str) -> Optional[OrderSnapshot]:
        return self._snapshots.get(tenant_id)

    async def get_orders(self, tenant_id: str, refresh: bool = False) -> List[Order]:
        snapshot = self._snapshots.get(tenant_id)
        if refresh or snapshot is None:
            return await self.refresh(tenant_id)
        return snapshot.orders

    def is_polling(self, tenant_id: str) -> bool:
        task = self._polling_tasks.get(tenant_id)
        return task is not None and not task.done()

    def is_watching(self, tenant_id: str) -> bool:
        return tenant_id in self._watches

    def start_polling(self, tenant_id: str) -> None:
        """
        Start following a tenant's orders; must be called from a running loop.

        Store change notifications trigger a refresh as they arrive. The
        periodic poll runs alongside and covers missed notifications.
        """
        if self.is_polling(tenant_id):
            return

        self._start_watch(tenant_id)

        async def poll_loop():
            tenant_id_var.set(tenant_id)
            while True:
                await asyncio.sleep(self.poll_interval)
                try:
                    await self.refresh(tenant_id)
                except Exception as e:
                    self.log_error(e, "poll_orders", level="WARNING", tenant_id=tenant_id)

        self._polling_tasks[tenant_id] = asyncio.create_task(poll_loop())
        self.log_operation("start_polling", tenant_id=tenant_id, interval=self.poll_interval,
                           watching=self.is_watching(tenant_id))

    def _start_watch(self, tenant_id: str) -> None:
        if self.is_watching(tenant_id):
            return
        loop = asyncio.get_running_loop()

        def on_change():
            # Firestore invokes this from its listener thread
            try:
                loop.call_soon_threadsafe(self._schedule_change, tenant_id)
            except RuntimeError:
                self.log_operation("order_change_dropped", level="DEBUG", tenant_id=tenant_id)

        try:
            self._watches[tenant_id] = self.gateway.watch_orders(tenant_id, on_change)
        except PersistenceError as e:
            self.log_error(e, "watch_orders", level="WARNING", tenant_id=tenant_id)

    def _schedule_change(self, tenant_id: str) -> None:
        # Notifications arriving before the pending refresh starts share it
        if tenant_id in self._pending_changes:
            return
        self._pending_changes.add(tenant_id)

        async def run():
            tenant_id_var.set(tenant_id)
            self._pending_changes.discard(tenant_id)
            try:
                await self.handle_change(tenant_id)
            except Exception as e:
                self.log_error(e, "handle_change", level="WARNING", tenant_id=tenant_id)

        task = asyncio.create_task(run())
        self._change_tasks.add(task)
        task.add_done_callback(self._change_tasks.discard)

    async def stop_polling(self, tenant_id: str) -> None:
        unsubscribe = self._watches.pop(tenant_id, None)
        if unsubscribe is not None:
            # Closing a Firestore listener joins its thread
            await asyncio.to_thread(unsubscribe)

        task = self._polling_tasks.pop(tenant_id, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.log_operation("stop_polling", tenant_id=tenant_id)

    async def stop_all(self) -> None:
        for tenant_id in set(self._polling_tasks) | set(self._watches):
            await self.stop_polling(tenant_id)

        tasks = list(self._change_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending_changes.clear()
