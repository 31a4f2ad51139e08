from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .products import Product


class CartItem(BaseModel):
    id: UUID
    user_id: UUID
    product_id: UUID
    quantity: int
    created_at: datetime
    product: Optional[Product] = None


class CartItemAdd(BaseModel):
    model_config = ConfigDict(extra='forbid')

    product_id: UUID
    quantity: int = Field(1, gt=0)


class CartItemUpdate(BaseModel):
    """New quantity; zero or less removes the item."""
    model_config = ConfigDict(extra='forbid')

    quantity: int


class WishlistEntry(BaseModel):
    id: UUID
    user_id: UUID
    product_id: UUID
    created_at: datetime


class WishlistToggle(BaseModel):
    product_id: UUID
    wishlisted: bool


class LikeStatus(BaseModel):
    product_id: UUID
    liked: bool
    count: int


class Comment(BaseModel):
    id: UUID
    user_id: UUID
    product_id: UUID
    comment: str
    created_at: datetime


class CommentCreate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    comment: str = Field(..., min_length=1, max_length=2000)


class CommentUpdate(CommentCreate):
    pass
