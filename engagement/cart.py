"""Shopping cart: one row per (user, product), quantity always positive."""

import logging
from typing import Dict, Any, List, Optional

from database.manager import BaseManager, records
from errors import ConstraintViolation

logger = logging.getLogger(__name__)

def _deleted_count(status: str) -> int:
    """Row count from an asyncpg command status such as 'DELETE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0

class CartManager(BaseManager):
    """Manages the caller's cart."""

    table = 'cart_items'

    async def list_cart(self, caller_id: str) -> List[Dict[str, Any]]:
        """List cart items with their products, oldest first.

        Items whose product has been deactivated keep `product` as None.
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            items = records(await conn.fetch(
                '''
                SELECT * FROM cart_items
                WHERE user_id = $1
                ORDER BY created_at
                ''',
                caller_id
            ))
            products = {}
            if items:
                rows = await conn.fetch(
                    'SELECT * FROM products WHERE id = ANY($1::uuid[])',
                    [item['product_id'] for item in items]
                )
                products = {row['id']: dict(row) for row in rows}

        for item in items:
            item['product'] = products.get(item['product_id'])
        return items

    async def add_to_cart(self, caller_id: str, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        """Add a product to the cart; an existing item's quantity is increased.

        Raises:
            ConstraintViolation: If quantity is not positive
            NotFoundError: If the product is not visible to the caller
        """
        if quantity <= 0:
            raise ConstraintViolation(
                "Quantity must be positive",
                field='quantity',
                value=quantity,
                constraint='cart_items_quantity_check'
            )
        row = {'user_id': caller_id, 'product_id': product_id, 'quantity': quantity}
        self.authorize_insert(caller_id, row)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            await self.fetch_visible(
                conn, 'SELECT id FROM products WHERE id = $1', product_id,
                table='products'
            )
            item = await conn.fetchrow(
                '''
                INSERT INTO cart_items (user_id, product_id, quantity)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id, product_id)
                DO UPDATE SET quantity = cart_items.quantity + EXCLUDED.quantity
                RETURNING *
                ''',
                caller_id,
                product_id,
                quantity
            )

        logger.info(f"Cart of {caller_id}: {product_id} x{item['quantity']}")
        return dict(item)

    async def update_quantity(
        self,
        caller_id: str,
        product_id: str,
        quantity: int
    ) -> Optional[Dict[str, Any]]:
        """Set an item's quantity; zero or less removes the item.

        Returns:
            The updated item, or None if it was removed

        Raises:
            NotFoundError: If the product is not in the caller's cart
        """
        if quantity <= 0:
            await self.remove_from_cart(caller_id, product_id)
            return None

        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn,
                'SELECT * FROM cart_items WHERE user_id = $1 AND product_id = $2',
                caller_id,
                product_id
            )
            self.authorize_update(caller_id, current, {'quantity': quantity})
            item = await conn.fetchrow(
                '''
                UPDATE cart_items
                SET quantity = $3
                WHERE user_id = $1 AND product_id = $2
                RETURNING *
                ''',
                caller_id,
                product_id,
                quantity
            )
        return dict(item)

    async def remove_from_cart(self, caller_id: str, product_id: str) -> bool:
        """Remove a product from the cart.

        Returns:
            True if an item was removed
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            status = await conn.execute(
                'DELETE FROM cart_items WHERE user_id = $1 AND product_id = $2',
                caller_id,
                product_id
            )
        return _deleted_count(status) > 0

    async def clear_cart(self, caller_id: str) -> int:
        """Remove every item from the caller's cart.

        Returns:
            Number of items removed
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            status = await conn.execute(
                'DELETE FROM cart_items WHERE user_id = $1', caller_id
            )
        removed = _deleted_count(status)
        logger.info(f"Cleared {removed} cart items for {caller_id}")
        return removed
