"""Product likes: at most one per (user, product), readable by anyone."""

import logging
from typing import Dict, Any, Optional

from database.manager import BaseManager

logger = logging.getLogger(__name__)

class LikeManager(BaseManager):
    """Manages product likes."""

    table = 'product_likes'

    async def toggle_like(self, caller_id: str, product_id: str) -> Dict[str, Any]:
        """Like the product, or unlike it if the caller already does.

        Returns:
            Dict with product_id, liked (the new state) and count

        Raises:
            NotFoundError: If adding and the product is not visible to the caller
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            existing = await conn.fetchrow(
                'SELECT * FROM product_likes WHERE user_id = $1 AND product_id = $2',
                caller_id,
                product_id
            )
            if existing is None:
                await self.fetch_visible(
                    conn, 'SELECT id FROM products WHERE id = $1', product_id,
                    table='products'
                )

            if existing:
                self.authorize_delete(caller_id, dict(existing))
                await conn.execute(
                    'DELETE FROM product_likes WHERE id = $1', existing['id']
                )
            else:
                self.authorize_insert(caller_id, {'user_id': caller_id, 'product_id': product_id})
                await conn.execute(
                    '''
                    INSERT INTO product_likes (user_id, product_id)
                    VALUES ($1, $2)
                    ON CONFLICT (user_id, product_id) DO NOTHING
                    ''',
                    caller_id,
                    product_id
                )

            count = await conn.fetchval(
                'SELECT COUNT(*) FROM product_likes WHERE product_id = $1', product_id
            )

        return {'product_id': product_id, 'liked': existing is None, 'count': count}

    async def count_likes(self, caller_id: Optional[str], product_id: str) -> int:
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            return await conn.fetchval(
                'SELECT COUNT(*) FROM product_likes WHERE product_id = $1', product_id
            )

    async def has_liked(self, caller_id: str, product_id: str) -> bool:
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            return await conn.fetchval(
                '''
                SELECT EXISTS(
                    SELECT 1 FROM product_likes
                    WHERE user_id = $1 AND product_id = $2
                )
                ''',
                caller_id,
                product_id
            )

    async def like_status(self, caller_id: Optional[str], product_id: str) -> Dict[str, Any]:
        """Count plus whether the caller likes the product (False when anonymous)."""
        count = await self.count_likes(caller_id, product_id)
        liked = await self.has_liked(caller_id, product_id) if caller_id else False
        return {'product_id': product_id, 'liked': liked, 'count': count}
