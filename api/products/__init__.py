"""Product catalog endpoints, including likes and comments."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, Security, status

from auth import get_current_user, get_optional_user
from engagement import like_manager, comment_manager
from models import (
    Product, ProductCreate, ProductUpdate, LikeStatus,
    Comment, CommentCreate, CommentUpdate
)
from products import manager

router = APIRouter(
    prefix="/products",
    tags=["Products"]
)

@router.get("", response_model=List[Product])
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: Optional[str] = Depends(get_optional_user)
):
    """Browse active products."""
    return await manager.list_products(user_id, category, search, limit, offset)

@router.post("", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    user_id: str = Security(get_current_user)
):
    """Create a listing owned by the caller."""
    return await manager.create_product(user_id, product.model_dump())

@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: UUID, user_id: Optional[str] = Depends(get_optional_user)):
    """Get a product."""
    return await manager.get_product(user_id, product_id)

@router.patch("/{product_id}", response_model=Product)
async def update_product(
    product_id: UUID,
    update: ProductUpdate,
    user_id: str = Security(get_current_user)
):
    """Update one of the caller's products."""
    return await manager.update_product(user_id, product_id, update.model_dump(exclude_unset=True))

@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: UUID, user_id: str = Security(get_current_user)):
    """Delete one of the caller's products."""
    await manager.delete_product(user_id, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/{product_id}/likes", response_model=LikeStatus)
async def get_likes(product_id: UUID, user_id: Optional[str] = Depends(get_optional_user)):
    """Like count and whether the caller likes the product."""
    return await like_manager.like_status(user_id, product_id)

@router.post("/{product_id}/likes", response_model=LikeStatus)
async def toggle_like(product_id: UUID, user_id: str = Security(get_current_user)):
    """Like or unlike the product."""
    return await like_manager.toggle_like(user_id, product_id)

@router.get("/{product_id}/comments", response_model=List[Comment])
async def list_comments(product_id: UUID, user_id: Optional[str] = Depends(get_optional_user)):
    """List the product's comments, newest first."""
    return await comment_manager.list_comments(user_id, product_id)

@router.post("/{product_id}/comments", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    product_id: UUID,
    body: CommentCreate,
    user_id: str = Security(get_current_user)
):
    """Comment on the product."""
    return await comment_manager.add_comment(user_id, product_id, body.comment)

@router.patch("/{product_id}/comments/{comment_id}", response_model=Comment)
async def update_comment(
    product_id: UUID,
    comment_id: UUID,
    body: CommentUpdate,
    user_id: str = Security(get_current_user)
):
    """Edit one of the caller's comments."""
    return await comment_manager.update_comment(user_id, comment_id, body.comment)

# Export the router
__all__ = ['router']
