"""
WebSocket Endpoints for Real-time Updates
Kitchen and dashboard clients subscribe to their tenant's order change signal
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.dependency_injection import get_connection_manager, get_order_sync_service
from app.core.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.websocket("/tenants/{tenant_id}")
async def tenant_websocket_endpoint(websocket: WebSocket, tenant_id: str):
    """
    Order change notifications for one tenant.

    Clients receive ``orders_changed`` and re-fetch the order list. Sending
    ``{"type": "refresh"}`` forces a re-fetch; ``ping`` is answered with ``pong``.
    While at least one client is connected the tenant's change watch and
    fallback poll run.
    """
    connection_manager = get_connection_manager()
    sync_service = get_order_sync_service()

    await connection_manager.connect(websocket, tenant_id)
    sync_service.start_polling(tenant_id)

    try:
        while True:
            message = await websocket.receive_text()
            message_type = await connection_manager.handle_message(websocket, message)
            if message_type == "refresh":
                await sync_service.refresh(tenant_id)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for tenant {tenant_id}")
    except Exception as e:
        logger.error(f"WebSocket error for tenant {tenant_id}: {e}")
    finally:
        await connection_manager.disconnect(websocket)
        if connection_manager.get_tenant_connections_count(tenant_id) == 0:
            await sync_service.stop_polling(tenant_id)
