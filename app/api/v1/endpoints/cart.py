"""
Cart API Endpoints
Per-session carts of a tenant's storefront
"""
from fastapi import APIRouter, Depends

from app.core.dependency_injection import get_cart_service
from app.core.logging_config import get_logger
from app.models.dto import (
    ApiResponseDTO, CartAddItemDTO, CartResponseDTO, CartSetQuantityDTO, CartSetWeightDTO
)
from app.services.cart_service import CartService

logger = get_logger(__name__)
router = APIRouter()


@router.get("/{tenant_id}/carts/{session_id}",
            response_model=ApiResponseDTO,
            summary="Get cart",
            description="Cart lines and derived total")
async def get_cart(tenant_id: str, session_id: str, carts: CartService = Depends(get_cart_service)):
    cart = await carts.get_cart(tenant_id, session_id)
    return ApiResponseDTO(data=CartResponseDTO.from_cart(cart, session_id))


@router.post("/{tenant_id}/carts/{session_id}/items",
             response_model=ApiResponseDTO,
             summary="Add item to cart",
             description="Unit items increase quantity; weight items add the given weight")
async def add_cart_item(
    tenant_id: str,
    session_id: str,
    payload: CartAddItemDTO,
    carts: CartService = Depends(get_cart_service)
):
    cart = await carts.add_item(tenant_id, session_id, payload.item_id, payload.weight)
    return ApiResponseDTO(message="Item added", data=CartResponseDTO.from_cart(cart, session_id))


@router.put("/{tenant_id}/carts/{session_id}/items/{item_id}/quantity",
            response_model=ApiResponseDTO,
            summary="Set line quantity",
            description="A quantity of zero or less removes the line")
async def set_cart_item_quantity(
    tenant_id: str,
    session_id: str,
    item_id: str,
    payload: CartSetQuantityDTO,
    carts: CartService = Depends(get_cart_service)
):
    cart = await carts.set_quantity(tenant_id, session_id, item_id, payload.quantity)
    return ApiResponseDTO(data=CartResponseDTO.from_cart(cart, session_id))


@router.put("/{tenant_id}/carts/{session_id}/items/{item_id}/weight",
            response_model=ApiResponseDTO,
            summary="Set line weight",
            description="A weight of zero or less removes the line")
async def set_cart_item_weight(
    tenant_id: str,
    session_id: str,
    item_id: str,
    payload: CartSetWeightDTO,
    carts: CartService = Depends(get_cart_service)
):
    cart = await carts.set_weight(tenant_id, session_id, item_id, payload.weight)
    return ApiResponseDTO(data=CartResponseDTO.from_cart(cart, session_id))


@router.delete("/{tenant_id}/carts/{session_id}/items/{item_id}",
               response_model=ApiResponseDTO,
               summary="Remove item from cart")
async def remove_cart_item(
    tenant_id: str,
    session_id: str,
    item_id: str,
    carts: CartService = Depends(get_cart_service)
):
    cart = await carts.remove_item(tenant_id, session_id, item_id)
    return ApiResponseDTO(message="Item removed", data=CartResponseDTO.from_cart(cart, session_id))


@router.delete("/{tenant_id}/carts/{session_id}",
               response_model=ApiResponseDTO,
               summary="Clear cart")
async def clear_cart(tenant_id: str, session_id: str, carts: CartService = Depends(get_cart_service)):
    cart = await carts.clear(tenant_id, session_id)
    return ApiResponseDTO(message="Cart cleared", data=CartResponseDTO.from_cart(cart, session_id))
