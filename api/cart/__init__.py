"""Shopping cart endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Security

from auth import get_current_user
from engagement import cart_manager
from models import CartItem, CartItemAdd, CartItemUpdate

router = APIRouter(
    prefix="/cart",
    tags=["Cart"]
)

@router.get("", response_model=List[CartItem])
async def list_cart(user_id: str = Security(get_current_user)):
    """List the caller's cart with products."""
    return await cart_manager.list_cart(user_id)

@router.post("", response_model=CartItem)
async def add_to_cart(body: CartItemAdd, user_id: str = Security(get_current_user)):
    """Add a product; an existing item's quantity is increased."""
    return await cart_manager.add_to_cart(user_id, body.product_id, body.quantity)

@router.patch("/{product_id}", response_model=Optional[CartItem])
async def update_quantity(
    product_id: UUID,
    body: CartItemUpdate,
    user_id: str = Security(get_current_user)
):
    """Set an item's quantity; zero or less removes it and returns null."""
    return await cart_manager.update_quantity(user_id, product_id, body.quantity)

@router.delete("/{product_id}")
async def remove_from_cart(product_id: UUID, user_id: str = Security(get_current_user)):
    """Remove a product from the cart."""
    return {"removed": await cart_manager.remove_from_cart(user_id, product_id)}

@router.delete("")
async def clear_cart(user_id: str = Security(get_current_user)):
    """Empty the cart."""
    return {"removed": await cart_manager.clear_cart(user_id)}

# Export the router
__all__ = ['router']
