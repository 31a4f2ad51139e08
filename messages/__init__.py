"""Messaging module.

Direct messages and product inquiries between users. A message is a
product inquiry exactly when it references a product. Replies point at
their parent message and must stay between the same two users.
"""

import logging
from typing import Dict, Any, List, Optional

from database.manager import BaseManager, records
from errors import ConstraintViolation

logger = logging.getLogger(__name__)

def message_type_for(product_id: Optional[str]) -> str:
    return 'product_inquiry' if product_id else 'direct'

def _participants(row: Dict[str, Any]) -> set:
    return {str(row['from_user_id']).lower(), str(row['to_user_id']).lower()}

class MessageManager(BaseManager):
    """Manages messages between users."""

    table = 'messages'

    async def send_message(
        self,
        caller_id: str,
        to_user_id: str,
        message: str,
        product_id: Optional[str] = None,
        parent_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Send a message from the caller.

        Args:
            caller_id: Authenticated caller, becomes the sender
            to_user_id: Recipient profile id
            message: Message text, must not be blank
            product_id: Optional product the message asks about
            parent_id: Optional message this one replies to

        Returns:
            The stored message

        Raises:
            ConstraintViolation: If the text is blank or the parent is from another conversation
            NotFoundError: If the parent message is not visible to the caller
        """
        text = (message or '').strip()
        if not text:
            raise ConstraintViolation(
                "Message must not be empty",
                field='message',
                constraint='messages_message_check'
            )

        row = {
            'from_user_id': caller_id,
            'to_user_id': to_user_id,
            'product_id': product_id,
            'parent_id': parent_id,
            'message': text,
            'message_type': message_type_for(product_id)
        }
        self.authorize_insert(caller_id, row)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            if parent_id:
                parent = await self.fetch_visible(
                    conn, 'SELECT * FROM messages WHERE id = $1', parent_id
                )
                if _participants(parent) != _participants(row):
                    raise ConstraintViolation(
                        "Reply must stay in the same conversation",
                        field='parent_id',
                        value=parent_id
                    )

            stored = await conn.fetchrow(
                '''
                INSERT INTO messages (
                    from_user_id, to_user_id, product_id,
                    parent_id, message, message_type
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                ''',
                row['from_user_id'],
                row['to_user_id'],
                row['product_id'],
                row['parent_id'],
                row['message'],
                row['message_type']
            )

        logger.info(f"Message {stored['id']} sent from {caller_id} to {to_user_id}")
        return dict(stored)

    async def list_messages(
        self,
        caller_id: str,
        unread_only: bool = False,
        product_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List messages the caller sent or received, newest first."""
        await self.ensure_pool()

        conditions = ['(from_user_id = $1 OR to_user_id = $1)']
        params: List[Any] = [caller_id]

        if unread_only:
            conditions.append('to_user_id = $1 AND NOT is_read')

        if product_id:
            params.append(product_id)
            conditions.append(f"product_id = ${len(params)}")

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                f'''
                SELECT * FROM messages
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC
                ''',
                *params
            )
        return records(rows)

    async def list_thread(self, caller_id: str, message_id: str) -> List[Dict[str, Any]]:
        """List a message and all replies below it, oldest first.

        Raises:
            NotFoundError: If the message is not visible to the caller
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            await self.fetch_visible(
                conn, 'SELECT id FROM messages WHERE id = $1', message_id
            )
            rows = await conn.fetch(
                '''
                WITH RECURSIVE thread AS (
                    SELECT * FROM messages WHERE id = $1
                    UNION ALL
                    SELECT m.* FROM messages m
                    JOIN thread t ON m.parent_id = t.id
                )
                SELECT * FROM thread
                ORDER BY created_at
                ''',
                message_id
            )
        return records(rows)

    async def mark_as_read(self, caller_id: str, message_id: str) -> Dict[str, Any]:
        """Mark a received message as read.

        Raises:
            NotFoundError: If the message is not visible to the caller
            AuthorizationDenied: If the caller is the sender
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM messages WHERE id = $1', message_id
            )
            self.authorize_update(caller_id, current, {'is_read': True})

            if current['is_read']:
                return current

            row = await conn.fetchrow(
                '''
                UPDATE messages
                SET is_read = true
                WHERE id = $1
                RETURNING *
                ''',
                message_id
            )
        return dict(row)

    async def unread_count(self, caller_id: str) -> int:
        """Number of unread messages addressed to the caller."""
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            return await conn.fetchval(
                '''
                SELECT COUNT(*) FROM messages
                WHERE to_user_id = $1 AND NOT is_read
                ''',
                caller_id
            )

# Create global instance
manager = MessageManager()

__all__ = ['MessageManager', 'manager', 'message_type_for']
