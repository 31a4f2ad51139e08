from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

# Positive amount with two fractional digits, stored as NUMERIC(10,2)
Money = Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]


class Product(BaseModel):
    id: UUID
    seller_id: UUID
    title: str
    description: str
    price: Decimal
    stock: int
    category: str
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ProductCreate(BaseModel):
    """A new listing; the seller is always the caller."""
    model_config = ConfigDict(extra='forbid')

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    price: Money
    stock: int = Field(0, ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    image_url: Optional[str] = Field(None, max_length=2048)
    video_url: Optional[str] = Field(None, max_length=2048)
    is_active: bool = True


class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    price: Optional[Money] = None
    stock: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    image_url: Optional[str] = Field(None, max_length=2048)
    video_url: Optional[str] = Field(None, max_length=2048)
    is_active: Optional[bool] = None
