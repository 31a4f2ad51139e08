"""Profile and seller store endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Security

from auth import get_current_user, get_optional_user
from models import Profile, ProfileUpdate, Seller, SellerCreate, SellerUpdate, Product
from products import manager as product_manager
from profiles import manager

router = APIRouter(
    prefix="/profile",
    tags=["Profile"]
)

sellers_router = APIRouter(
    prefix="/sellers",
    tags=["Sellers"]
)

@router.get("", response_model=Profile)
async def get_profile(user_id: str = Security(get_current_user)):
    """Get the authenticated user's profile."""
    return await manager.get_profile(user_id)

@router.patch("", response_model=Profile)
async def update_profile(
    update: ProfileUpdate,
    user_id: str = Security(get_current_user)
):
    """Update the authenticated user's profile."""
    return await manager.update_profile(user_id, update.model_dump(exclude_unset=True))

@router.post("/seller", response_model=Profile)
async def become_seller(
    store: SellerCreate,
    user_id: str = Security(get_current_user)
):
    """Switch to the seller role and open a store."""
    return await manager.become_seller(user_id, store.model_dump())

@router.patch("/seller", response_model=Seller)
async def update_seller(
    update: SellerUpdate,
    user_id: str = Security(get_current_user)
):
    """Update the authenticated seller's store."""
    return await manager.update_seller(user_id, update.model_dump(exclude_unset=True))

@router.delete("/seller", response_model=Profile)
async def back_to_buyer(user_id: str = Security(get_current_user)):
    """Close the store and switch back to the buyer role."""
    return await manager.back_to_buyer(user_id)

@sellers_router.get("", response_model=List[Seller])
async def list_sellers(
    verified_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_optional_user)
):
    """List seller stores."""
    return await manager.list_sellers(user_id, verified_only, limit, offset)

@sellers_router.get("/{seller_id}", response_model=Seller)
async def get_seller(seller_id: UUID, user_id: str = Depends(get_optional_user)):
    """Get a seller's store details."""
    return await manager.get_seller(user_id, seller_id)

@sellers_router.get("/{seller_id}/products", response_model=List[Product])
async def list_seller_products(seller_id: UUID, user_id: str = Depends(get_optional_user)):
    """List a seller's products visible to the caller."""
    return await product_manager.list_seller_products(user_id, seller_id)

# Export the routers
__all__ = ['router', 'sellers_router']
