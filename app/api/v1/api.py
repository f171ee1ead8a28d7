"""
Order & Cart Engine - Main API Router
Collects the cart, order, payment, websocket and health endpoints
"""
from fastapi import APIRouter

from app.core.logging_config import get_logger

logger = get_logger(__name__)

from app.api.v1.endpoints import (
    cart,
    order,
    payments,
    health,
    websocket,
)


api_router = APIRouter()


# =============================================================================
# STOREFRONT ENDPOINTS
# =============================================================================

# Carts
api_router.include_router(
    cart.router,
    prefix="/tenants",
    tags=["carts"],
    responses={
        404: {"description": "Menu item not found"},
        422: {"description": "Invalid cart operation"}
    }
)

# Orders, checkout and kitchen queues
api_router.include_router(
    order.router,
    prefix="/tenants",
    tags=["orders"],
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Illegal status transition"},
        422: {"description": "Invalid checkout data"}
    }
)

# =============================================================================
# PAYMENT PROVIDER ENDPOINTS
# =============================================================================

api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["payments"],
    responses={
        401: {"description": "Invalid notification signature"},
        500: {"description": "Notification secret not configured"}
    }
)

# Health Check Endpoints
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
    responses={
        200: {"description": "Health check successful"},
        503: {"description": "Service unavailable"}
    }
)

# =============================================================================
# WEBSOCKET ENDPOINTS
# =============================================================================

# Order change notifications
api_router.include_router(
    websocket.router,
    prefix="/ws",
    tags=["websocket"]
)
