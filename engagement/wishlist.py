"""Wishlist: saved products.

Each entry is mirrored in the profile's `wishlist` JSON array; the entry and
the array change together in one transaction.
"""

import logging
from typing import Dict, Any, List

import asyncpg

from database import translate_db_error
from database.manager import BaseManager, records
from errors import MarketplaceError, StepError

logger = logging.getLogger(__name__)

class WishlistManager(BaseManager):
    """Manages the caller's wishlist."""

    table = 'wishlist'

    async def list_wishlist(self, caller_id: str) -> List[Dict[str, Any]]:
        """List wishlist entries, newest first."""
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM wishlist
                WHERE user_id = $1
                ORDER BY created_at DESC
                ''',
                caller_id
            )
        return records(rows)

    async def toggle(self, caller_id: str, product_id: str) -> Dict[str, Any]:
        """Add the product to the wishlist, or remove it if already there.

        Returns:
            Dict with product_id and wishlisted (the new state)

        Raises:
            NotFoundError: If adding and the product is not visible to the caller
            StepError: If a step fails; `step` is 'update_entry' or 'update_profile'
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            existing = await conn.fetchrow(
                'SELECT * FROM wishlist WHERE user_id = $1 AND product_id = $2',
                caller_id,
                product_id
            )
            # Entries for products hidden since they were saved stay removable
            if existing is None:
                await self.fetch_visible(
                    conn, 'SELECT id FROM products WHERE id = $1', product_id,
                    table='products'
                )

            step = 'update_entry'
            try:
                if existing:
                    self.authorize_delete(caller_id, dict(existing))
                    await conn.execute(
                        'DELETE FROM wishlist WHERE id = $1', existing['id']
                    )
                else:
                    self.authorize_insert(caller_id, {'user_id': caller_id, 'product_id': product_id})
                    await conn.execute(
                        'INSERT INTO wishlist (user_id, product_id) VALUES ($1, $2)',
                        caller_id,
                        product_id
                    )

                step = 'update_profile'
                await conn.execute(
                    '''
                    UPDATE profiles
                    SET wishlist = CASE
                        WHEN $3 THEN wishlist - $2::text
                        WHEN wishlist ? $2::text THEN wishlist
                        ELSE wishlist || to_jsonb($2::text)
                    END
                    WHERE id = $1
                    ''',
                    caller_id,
                    str(product_id),
                    existing is not None
                )
            except MarketplaceError as e:
                logger.error(f"Wishlist toggle failed at {step} for {caller_id}: {e}")
                raise StepError(step, e)
            except (asyncpg.PostgresError, OSError) as e:
                logger.error(f"Wishlist toggle failed at {step} for {caller_id}: {e}")
                raise StepError(step, translate_db_error(e))

        return {'product_id': product_id, 'wishlisted': existing is None}
