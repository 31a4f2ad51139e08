"""Messaging endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Security, status

from auth import get_current_user
from messages import manager
from models import Message, MessageCreate, UnreadCount

router = APIRouter(
    prefix="/messages",
    tags=["Messages"]
)

@router.get("", response_model=List[Message])
async def list_messages(
    unread_only: bool = False,
    product_id: Optional[UUID] = None,
    user_id: str = Security(get_current_user)
):
    """List messages the caller sent or received."""
    return await manager.list_messages(user_id, unread_only, product_id)

@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(body: MessageCreate, user_id: str = Security(get_current_user)):
    """Send a direct message or product inquiry."""
    return await manager.send_message(
        user_id,
        body.to_user_id,
        body.message,
        product_id=body.product_id,
        parent_id=body.parent_id
    )

@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(user_id: str = Security(get_current_user)):
    """Number of unread messages addressed to the caller."""
    return {"unread": await manager.unread_count(user_id)}

@router.get("/{message_id}/thread", response_model=List[Message])
async def list_thread(message_id: UUID, user_id: str = Security(get_current_user)):
    """A message and its replies, oldest first."""
    return await manager.list_thread(user_id, message_id)

@router.post("/{message_id}/read", response_model=Message)
async def mark_as_read(message_id: UUID, user_id: str = Security(get_current_user)):
    """Mark a received message as read."""
    return await manager.mark_as_read(user_id, message_id)

# Export the router
__all__ = ['router']
