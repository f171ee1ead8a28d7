"""
WebSocket Connection Manager
Per-tenant subscriber channels for order change notifications
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from app.core.logging_config import get_logger

logger = get_logger(__name__)

ORDERS_CHANGED = "orders_changed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Manages WebSocket connections for real-time updates"""

    def __init__(self):
        self.tenant_connections: Dict[str, Set[WebSocket]] = {}
        self.connection_metadata: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, tenant_id: str) -> None:
        """Accept a kitchen or dashboard client onto its tenant channel"""
        await websocket.accept()

        self.tenant_connections.setdefault(tenant_id, set()).add(websocket)
        self.connection_metadata[websocket] = {
            "tenant_id": tenant_id,
            "connected_at": datetime.now(timezone.utc),
        }

        logger.info(f"Client connected to tenant {tenant_id} WebSocket")

        await self.send_to_connection(websocket, {
            "type": "connection_established",
            "data": {"tenant_id": tenant_id},
            "timestamp": _now_iso(),
        })

    async def disconnect(self, websocket: WebSocket) -> Optional[str]:
        """Forget a connection; returns the tenant it belonged to"""
        metadata = self.connection_metadata.pop(websocket, None)
        if not metadata:
            return None

        tenant_id = metadata["tenant_id"]
        connections = self.tenant_connections.get(tenant_id)
        if connections is not None:
            connections.discard(websocket)
            if not connections:
                del self.tenant_connections[tenant_id]

        logger.info(f"Client disconnected from tenant {tenant_id} WebSocket")
        return tenant_id

    async def send_to_connection(self, websocket: WebSocket, message: Dict[str, Any]) -> None:
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.error(f"Failed to send message to WebSocket: {e}")
            await self.disconnect(websocket)

    async def send_to_tenant(self, tenant_id: str, message: Dict[str, Any]) -> int:
        """Send message to every client of a tenant; returns how many received it"""
        connections = self.tenant_connections.get(tenant_id)
        if not connections:
            return 0

        failed = []
        sent_count = 0
        for websocket in connections.copy():
            try:
                await websocket.send_text(json.dumps(message, default=str))
                sent_count += 1
            except Exception as e:
                logger.error(f"Failed to send message to tenant WebSocket: {e}")
                failed.append(websocket)

        for websocket in failed:
            await self.disconnect(websocket)

        logger.debug(f"Sent {message.get('type')} to {sent_count} clients of tenant {tenant_id}")
        return sent_count

    async def send_orders_changed(self, tenant_id: str) -> int:
        """Opaque signal; clients re-fetch the order list when they see it"""
        return await self.send_to_tenant(tenant_id, {
            "type": ORDERS_CHANGED,
            "data": {"tenant_id": tenant_id},
            "timestamp": _now_iso(),
        })

    async def handle_message(self, websocket: WebSocket, message: str) -> Optional[str]:
        """Answer pings; returns the message type so callers can act on the rest"""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON received in WebSocket message")
            return None

        message_type = data.get("type") if isinstance(data, dict) else None
        if message_type == "ping":
            await self.send_to_connection(websocket, {"type": "pong", "timestamp": _now_iso()})
        return message_type

    def get_tenant_connections_count(self, tenant_id: str) -> int:
        return len(self.tenant_connections.get(tenant_id, set()))

    def get_connection_stats(self) -> Dict[str, Any]:
        return {
            "total_connections": len(self.connection_metadata),
            "tenant_connections": {
                tenant_id: len(connections) for tenant_id, connections in self.tenant_connections.items()
            },
            "timestamp": _now_iso(),
        }
