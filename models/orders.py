from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .blobs import ShippingAddress


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Order(BaseModel):
    id: UUID
    buyer_id: UUID
    seller_id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    status: OrderStatus
    shipping_address: Optional[ShippingAddress] = None
    created_at: datetime
    updated_at: datetime


class OrderItem(BaseModel):
    model_config = ConfigDict(extra='forbid')

    product_id: UUID
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    """Place orders for explicit items; prices come from the products."""
    model_config = ConfigDict(extra='forbid')

    items: List[OrderItem] = Field(..., min_length=1)
    shipping_address: Optional[ShippingAddress] = None


class CheckoutRequest(BaseModel):
    """Turn the caller's cart into orders."""
    model_config = ConfigDict(extra='forbid')

    shipping_address: Optional[ShippingAddress] = None


class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    status: OrderStatus
