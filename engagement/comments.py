"""Product comments: anyone reads, authors write their own."""

import logging
from typing import Dict, Any, List, Optional

from database.manager import BaseManager, records
from errors import ConstraintViolation

logger = logging.getLogger(__name__)

def _clean_comment(comment: str) -> str:
    text = (comment or '').strip()
    if not text:
        raise ConstraintViolation(
            "Comment must not be empty",
            field='comment',
            constraint='product_comments_comment_check'
        )
    return text

class CommentManager(BaseManager):
    """Manages product comments."""

    table = 'product_comments'

    async def add_comment(self, caller_id: str, product_id: str, comment: str) -> Dict[str, Any]:
        """Comment on a product as the caller.

        Raises:
            ConstraintViolation: If the comment is blank
            NotFoundError: If the product is not visible to the caller
        """
        text = _clean_comment(comment)
        self.authorize_insert(caller_id, {'user_id': caller_id, 'product_id': product_id})
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            await self.fetch_visible(
                conn, 'SELECT id FROM products WHERE id = $1', product_id,
                table='products'
            )
            row = await conn.fetchrow(
                '''
                INSERT INTO product_comments (user_id, product_id, comment)
                VALUES ($1, $2, $3)
                RETURNING *
                ''',
                caller_id,
                product_id,
                text
            )

        logger.info(f"Comment {row['id']} on product {product_id} by {caller_id}")
        return dict(row)

    async def list_comments(self, caller_id: Optional[str], product_id: str) -> List[Dict[str, Any]]:
        """List a product's comments, newest first."""
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM product_comments
                WHERE product_id = $1
                ORDER BY created_at DESC
                ''',
                product_id
            )
        return records(rows)

    async def update_comment(self, caller_id: str, comment_id: str, comment: str) -> Dict[str, Any]:
        """Edit the caller's own comment.

        Raises:
            ConstraintViolation: If the comment is blank
            NotFoundError: If the comment does not exist
            AuthorizationDenied: If the comment belongs to someone else
        """
        text = _clean_comment(comment)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM product_comments WHERE id = $1', comment_id
            )
            self.authorize_update(caller_id, current, {'comment': text})
            row = await conn.fetchrow(
                '''
                UPDATE product_comments
                SET comment = $2
                WHERE id = $1
                RETURNING *
                ''',
                comment_id,
                text
            )
        return dict(row)
