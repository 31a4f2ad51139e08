from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

from .blobs import PaymentInfo


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


class Seller(BaseModel):
    """A seller's store details."""
    id: int
    user_id: UUID
    store_name: str
    store_description: Optional[str] = None
    store_address: Optional[str] = None
    payment_info: Optional[PaymentInfo] = None
    is_verified: bool = False
    created_at: datetime
    updated_at: datetime


class BuyerCapability(BaseModel):
    role: Literal['buyer'] = 'buyer'


class SellerCapability(BaseModel):
    role: Literal['seller'] = 'seller'
    seller: Seller


Capability = Annotated[Union[BuyerCapability, SellerCapability], Field(discriminator='role')]


class Profile(BaseModel):
    """A user's profile; `capability` says whether it carries a store."""
    id: UUID
    full_name: str
    role: Role
    email: str
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    wishlist: List[UUID] = Field(default_factory=list)
    capability: Capability = Field(default_factory=BuyerCapability)
    created_at: datetime
    updated_at: datetime

    @property
    def is_seller(self) -> bool:
        return isinstance(self.capability, SellerCapability)


class ProfileUpdate(BaseModel):
    """Caller-writable profile fields."""
    model_config = ConfigDict(extra='forbid')

    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=40)
    profile_image: Optional[str] = Field(None, max_length=2048)
    bio: Optional[str] = Field(None, max_length=2000)


class SellerCreate(BaseModel):
    """Store details supplied when a profile becomes a seller."""
    model_config = ConfigDict(extra='forbid')

    store_name: str = Field(..., min_length=1, max_length=200)
    store_description: Optional[str] = Field(None, max_length=2000)
    store_address: Optional[str] = Field(None, max_length=500)
    payment_info: Optional[PaymentInfo] = None


class SellerUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    store_name: Optional[str] = Field(None, min_length=1, max_length=200)
    store_description: Optional[str] = Field(None, max_length=2000)
    store_address: Optional[str] = Field(None, max_length=500)
    payment_info: Optional[PaymentInfo] = None
