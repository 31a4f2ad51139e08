"""Product catalog module.

Sellers manage their own listings; everyone browses active listings.
Stock is informational only and is not decremented by orders.
"""

import logging
from typing import Dict, Any, List, Optional

from database.manager import BaseManager, records, set_clause, check_fields

logger = logging.getLogger(__name__)

# Fields sellers may update on their own products
MUTABLE_FIELDS = {
    'title',
    'description',
    'price',
    'stock',
    'category',
    'image_url',
    'video_url',
    'is_active'
}

INSERT_FIELDS = (
    'seller_id',
    'title',
    'description',
    'price',
    'stock',
    'category',
    'image_url',
    'video_url',
    'is_active'
)

class ProductManager(BaseManager):
    """Manages product listings."""

    table = 'products'

    async def create_product(self, caller_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a listing owned by the caller.

        Args:
            caller_id: Authenticated caller, becomes the seller
            data: Product fields (title, description, price, category, ...)

        Returns:
            The created product row

        Raises:
            ConstraintViolation: If a value is missing or out of range
            AuthorizationDenied: If the caller may not create the listing
        """
        await self.ensure_pool()

        row = {
            'stock': 0,
            'is_active': True,
            **{k: v for k, v in data.items() if k in MUTABLE_FIELDS},
            'seller_id': caller_id
        }
        fields = [f for f in INSERT_FIELDS if f in row]
        self.authorize_insert(caller_id, row)

        async with self.acting_as(caller_id) as conn:
            product = await conn.fetchrow(
                f'''
                INSERT INTO products ({', '.join(fields)})
                VALUES ({', '.join(f'${i}' for i in range(1, len(fields) + 1))})
                RETURNING *
                ''',
                *[row[f] for f in fields]
            )

        logger.info(f"Created product {product['id']} for seller {caller_id}")
        return dict(product)

    async def get_product(self, caller_id: Optional[str], product_id: str) -> Dict[str, Any]:
        """Get a product visible to the caller.

        Raises:
            NotFoundError: If the product is missing, or inactive and not the caller's
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            return await self.fetch_visible(
                conn, 'SELECT * FROM products WHERE id = $1', product_id
            )

    async def list_products(
        self,
        caller_id: Optional[str],
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Browse active products, newest first.

        Args:
            caller_id: Caller, None for anonymous browsing
            category: Optional exact category filter
            search: Optional case-insensitive match on title or description
            limit: Maximum number of products to return
            offset: Number of products to skip
        """
        await self.ensure_pool()

        conditions = ['is_active']
        params: List[Any] = []

        if category:
            params.append(category)
            conditions.append(f"category = ${len(params)}")

        if search:
            params.append(f"%{search}%")
            conditions.append(f"(title ILIKE ${len(params)} OR description ILIKE ${len(params)})")

        params.extend([limit, offset])

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                f'''
                SELECT * FROM products
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC
                LIMIT ${len(params) - 1} OFFSET ${len(params)}
                ''',
                *params
            )
        return records(rows)

    async def list_seller_products(
        self,
        caller_id: Optional[str],
        seller_id: str
    ) -> List[Dict[str, Any]]:
        """List a seller's products; inactive ones are visible to the seller only."""
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM products
                WHERE seller_id = $1
                ORDER BY created_at DESC
                ''',
                seller_id
            )
        return records(rows)

    async def update_product(
        self,
        caller_id: str,
        product_id: str,
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Update mutable fields of the caller's product.

        Raises:
            ConstraintViolation: If a field is not updatable or a value is invalid
            NotFoundError: If the product is not visible to the caller
            AuthorizationDenied: If the product belongs to another seller
        """
        fields, values = check_fields(changes, MUTABLE_FIELDS)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM products WHERE id = $1', product_id
            )
            self.authorize_update(caller_id, current, changes)

            product = await conn.fetchrow(
                f'''
                UPDATE products
                SET {set_clause(fields, start=2)}
                WHERE id = $1
                RETURNING *
                ''',
                product_id,
                *values
            )

        logger.info(f"Updated product {product_id}: {', '.join(fields)}")
        return dict(product)

    async def delete_product(self, caller_id: str, product_id: str) -> None:
        """Delete the caller's product; carts, wishlists and orders cascade.

        Raises:
            NotFoundError: If the product is not visible to the caller
            AuthorizationDenied: If the product belongs to another seller
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM products WHERE id = $1', product_id
            )
            self.authorize_delete(caller_id, current)
            await conn.execute('DELETE FROM products WHERE id = $1', product_id)

        logger.info(f"Deleted product {product_id}")

# Create global instance
manager = ProductManager()

__all__ = ['ProductManager', 'manager', 'MUTABLE_FIELDS']
