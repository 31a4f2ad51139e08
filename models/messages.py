from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MessageType(str, Enum):
    DIRECT = "direct"
    PRODUCT_INQUIRY = "product_inquiry"


class Message(BaseModel):
    id: UUID
    from_user_id: UUID
    to_user_id: UUID
    product_id: Optional[UUID] = None
    parent_id: Optional[UUID] = None
    message: str
    is_read: bool
    message_type: MessageType
    created_at: datetime


class MessageCreate(BaseModel):
    """A message from the caller; its type follows from `product_id`."""
    model_config = ConfigDict(extra='forbid')

    to_user_id: UUID
    message: str = Field(..., min_length=1, max_length=5000)
    product_id: Optional[UUID] = None
    parent_id: Optional[UUID] = None


class UnreadCount(BaseModel):
    unread: int
