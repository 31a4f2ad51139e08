"""Orders API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Security, status

from auth import get_current_user
from models import Order, OrderCreate, CheckoutRequest, OrderStatus, OrderStatusUpdate
from orders import manager

# Create router
router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)

@router.get("", response_model=List[Order])
async def list_orders(
    as_role: Optional[str] = Query(None, pattern="^(buyer|seller)$"),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    user_id: str = Security(get_current_user)
):
    """List orders the caller bought or sold."""
    return await manager.list_orders(
        user_id,
        as_role=as_role,
        status=order_status.value if order_status else None
    )

@router.post("", response_model=List[Order], status_code=status.HTTP_201_CREATED)
async def create_order(body: OrderCreate, user_id: str = Security(get_current_user)):
    """Order explicit items; prices are taken from the products."""
    return await manager.create_order(
        user_id,
        [item.model_dump() for item in body.items],
        body.shipping_address
    )

@router.post("/checkout", response_model=List[Order], status_code=status.HTTP_201_CREATED)
async def checkout(body: CheckoutRequest, user_id: str = Security(get_current_user)):
    """Turn the caller's cart into orders and clear the cart."""
    return await manager.checkout(user_id, body.shipping_address)

@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: UUID, user_id: str = Security(get_current_user)):
    """Get an order the caller bought or sold."""
    return await manager.get_order(user_id, order_id)

@router.patch("/{order_id}/status", response_model=Order)
async def update_status(
    order_id: UUID,
    body: OrderStatusUpdate,
    user_id: str = Security(get_current_user)
):
    """Move an order to a new status (seller only)."""
    return await manager.update_status(user_id, order_id, body.status.value)

# Export the router
__all__ = ['router']
