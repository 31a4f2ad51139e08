"""Versioned shapes for the JSON blobs stored in JSONB columns.

`sellers.payment_info` and `orders.shipping_address` used to be free-form
objects. They are validated against these models on write and on read; a
stored blob without a `version` key is read as version 1.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentInfoV1(BaseModel):
    """How a seller gets paid."""
    model_config = ConfigDict(extra='forbid')

    version: Literal[1] = 1
    method: Literal['pix', 'bank_transfer', 'paypal', 'card'] = 'pix'
    account_holder: Optional[str] = Field(None, max_length=200)
    pix_key: Optional[str] = Field(None, max_length=200)
    bank_code: Optional[str] = Field(None, max_length=20)
    branch: Optional[str] = Field(None, max_length=20)
    account_number: Optional[str] = Field(None, max_length=40)
    email: Optional[str] = Field(None, max_length=320)


class ShippingAddressV1(BaseModel):
    """Where an order is delivered."""
    model_config = ConfigDict(extra='forbid')

    version: Literal[1] = 1
    recipient: str = Field(..., min_length=1, max_length=200)
    street: str = Field(..., min_length=1, max_length=300)
    number: Optional[str] = Field(None, max_length=20)
    complement: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=1, max_length=120)
    state: str = Field(..., min_length=1, max_length=120)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field('BR', min_length=2, max_length=2)


PaymentInfo = PaymentInfoV1
ShippingAddress = ShippingAddressV1


def _versioned(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    return {'version': 1, **raw}


def parse_payment_info(raw: Optional[Dict[str, Any]]) -> Optional[PaymentInfo]:
    """Validate a stored payment_info blob; an empty blob means not configured."""
    data = _versioned(raw)
    return PaymentInfoV1.model_validate(data) if data else None


def parse_shipping_address(raw: Optional[Dict[str, Any]]) -> Optional[ShippingAddress]:
    """Validate a stored shipping_address blob."""
    data = _versioned(raw)
    return ShippingAddressV1.model_validate(data) if data else None
