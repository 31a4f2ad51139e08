"""Wishlist endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Security

from auth import get_current_user
from engagement import wishlist_manager
from models import WishlistEntry, WishlistToggle

router = APIRouter(
    prefix="/wishlist",
    tags=["Wishlist"]
)

@router.get("", response_model=List[WishlistEntry])
async def list_wishlist(user_id: str = Security(get_current_user)):
    """List the caller's wishlist."""
    return await wishlist_manager.list_wishlist(user_id)

@router.post("/{product_id}", response_model=WishlistToggle)
async def toggle_wishlist(product_id: UUID, user_id: str = Security(get_current_user)):
    """Add the product to the wishlist, or remove it if present."""
    return await wishlist_manager.toggle(user_id, product_id)

# Export the router
__all__ = ['router']
