"""Orders module for managing marketplace orders.

This module handles order creation from explicit items or from the caller's
cart, order listing for buyers and sellers, and status transitions.
Unit prices are always read from the product at order time and every total
is checked against `unit_price * quantity` before insertion.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Any

import asyncpg
from pydantic import ValidationError

from database import translate_db_error
from database.manager import BaseManager, records
from errors import ConstraintViolation, MarketplaceError, StepError
from models import parse_shipping_address
from .status import TRANSITIONS, validate_transition, can_transition, is_terminal

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
# NUMERIC(10,2) upper bound
MAX_AMOUNT = Decimal('100000000')

def compute_total(unit_price: Decimal, quantity: int) -> Decimal:
    """Total for an order line, rounded to cents."""
    return (Decimal(unit_price) * quantity).quantize(CENTS)

def validate_total(order: Dict[str, Any]) -> None:
    """Check an order row's money fields before insertion.

    Raises:
        ConstraintViolation: If the quantity is not positive, the total does not
            equal unit_price * quantity, or the total does not fit NUMERIC(10,2)
    """
    quantity = order['quantity']
    if not isinstance(quantity, int) or quantity <= 0:
        raise ConstraintViolation(
            "Quantity must be positive",
            field='quantity',
            value=quantity,
            constraint='orders_quantity_check'
        )

    expected = compute_total(order['unit_price'], quantity)
    if Decimal(order['total_price']) != expected:
        raise ConstraintViolation(
            f"Total {order['total_price']} does not equal {order['unit_price']} x {quantity}",
            field='total_price',
            value=order['total_price'],
            constraint='orders_total_price_check'
        )

    if expected >= MAX_AMOUNT:
        raise ConstraintViolation(
            "Order total is too large",
            field='total_price',
            value=expected,
            constraint='numeric_range'
        )

def _shipping_blob(value) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if hasattr(value, 'model_dump'):
        return value.model_dump(mode='json')
    try:
        address = parse_shipping_address(value)
    except ValidationError as e:
        raise ConstraintViolation(
            f"Invalid shipping address: {e.errors()[0]['msg']}",
            field='shipping_address',
            constraint='shipping_address_v1'
        )
    return address.model_dump(mode='json') if address else None

def _order_view(row) -> Dict[str, Any]:
    order = dict(row)
    order['shipping_address'] = parse_shipping_address(order.get('shipping_address'))
    return order

class OrderManager(BaseManager):
    """Manages order operations and state transitions."""

    table = 'orders'

    async def _insert_order(
        self,
        conn,
        caller_id: str,
        product_id: str,
        quantity: int,
        shipping_address: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Insert one order line priced from the product."""
        product = await self.fetch_visible(
            conn,
            'SELECT id, seller_id, price, is_active FROM products WHERE id = $1',
            product_id,
            table='products'
        )
        if not product['is_active']:
            raise ConstraintViolation(
                "Product is not available",
                field='product_id',
                value=product_id,
                constraint='products_is_active'
            )

        order = {
            'buyer_id': caller_id,
            'seller_id': product['seller_id'],
            'product_id': product['id'],
            'quantity': quantity,
            'unit_price': product['price'],
            'total_price': compute_total(product['price'], quantity),
            'shipping_address': shipping_address
        }
        validate_total(order)
        self.authorize_insert(caller_id, order)

        row = await conn.fetchrow(
            '''
            INSERT INTO orders (
                buyer_id, seller_id, product_id, quantity,
                unit_price, total_price, shipping_address
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING *
            ''',
            order['buyer_id'],
            order['seller_id'],
            order['product_id'],
            order['quantity'],
            order['unit_price'],
            order['total_price'],
            order['shipping_address']
        )
        return _order_view(row)

    async def create_order(
        self,
        caller_id: str,
        items: List[Dict[str, Any]],
        shipping_address: Any = None
    ) -> List[Dict[str, Any]]:
        """Create one order per item, all in one transaction.

        Args:
            caller_id: Authenticated caller, becomes the buyer
            items: List of {'product_id', 'quantity'}
            shipping_address: Optional ShippingAddressV1 (model or dict)

        Returns:
            The created order rows

        Raises:
            ConstraintViolation: If an item is invalid or a product is inactive
            NotFoundError: If a product is not visible to the caller
        """
        if not items:
            raise ConstraintViolation("At least one item is required", field='items')
        blob = _shipping_blob(shipping_address)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            orders = [
                await self._insert_order(
                    conn, caller_id, item['product_id'], item['quantity'], blob
                )
                for item in items
            ]

        logger.info(f"Created {len(orders)} orders for buyer {caller_id}")
        return orders

    async def checkout(self, caller_id: str, shipping_address: Any = None) -> List[Dict[str, Any]]:
        """Turn the caller's cart into orders and clear the cart.

        All steps run in one transaction; on failure no order is created and
        the cart is untouched.

        Returns:
            The created order rows

        Raises:
            ConstraintViolation: If the cart is empty
            StepError: If a step fails; `step` is 'load_cart', 'create_orders'
                or 'clear_cart'
        """
        blob = _shipping_blob(shipping_address)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            step = 'load_cart'
            try:
                cart = records(await conn.fetch(
                    '''
                    SELECT product_id, quantity
                    FROM cart_items
                    WHERE user_id = $1
                    ORDER BY created_at
                    ''',
                    caller_id
                ))
                if not cart:
                    raise ConstraintViolation("Cart is empty", field='cart')

                step = 'create_orders'
                orders = [
                    await self._insert_order(
                        conn, caller_id, item['product_id'], item['quantity'], blob
                    )
                    for item in cart
                ]

                step = 'clear_cart'
                await conn.execute(
                    'DELETE FROM cart_items WHERE user_id = $1', caller_id
                )
            except ConstraintViolation as e:
                if step == 'load_cart':
                    raise
                logger.error(f"Checkout failed at {step} for {caller_id}: {e}")
                raise StepError(step, e)
            except MarketplaceError as e:
                logger.error(f"Checkout failed at {step} for {caller_id}: {e}")
                raise StepError(step, e)
            except (asyncpg.PostgresError, OSError) as e:
                logger.error(f"Checkout failed at {step} for {caller_id}: {e}")
                raise StepError(step, translate_db_error(e))

        logger.info(f"Checked out {len(orders)} orders for buyer {caller_id}")
        return orders

    async def list_orders(
        self,
        caller_id: str,
        as_role: Optional[str] = None,
        status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List orders where the caller is buyer or seller, newest first.

        Args:
            caller_id: Authenticated caller
            as_role: Optional 'buyer' or 'seller' to restrict to one side
            status: Optional status filter
        """
        if as_role not in (None, 'buyer', 'seller'):
            raise ConstraintViolation("Invalid role filter", field='as_role', value=as_role)
        await self.ensure_pool()

        if as_role == 'buyer':
            conditions = ['buyer_id = $1']
        elif as_role == 'seller':
            conditions = ['seller_id = $1']
        else:
            conditions = ['(buyer_id = $1 OR seller_id = $1)']
        params: List[Any] = [caller_id]

        if status:
            params.append(status)
            conditions.append(f"status = ${len(params)}")

        async with self.acting_as(caller_id) as conn:
            rows = await conn.fetch(
                f'''
                SELECT * FROM orders
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC
                ''',
                *params
            )
        return [_order_view(row) for row in rows]

    async def get_order(self, caller_id: str, order_id: str) -> Dict[str, Any]:
        """Get an order the caller bought or sold.

        Raises:
            NotFoundError: If the order is missing or not the caller's
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            row = await self.fetch_visible(
                conn, 'SELECT * FROM orders WHERE id = $1', order_id
            )
        return _order_view(row)

    async def update_status(self, caller_id: str, order_id: str, status: str) -> Dict[str, Any]:
        """Move an order to a new status; only the seller may.

        Raises:
            NotFoundError: If the order is not visible to the caller
            AuthorizationDenied: If the caller is the buyer
            ConstraintViolation: If the transition is not allowed
        """
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            current = await self.fetch_visible(
                conn, 'SELECT * FROM orders WHERE id = $1', order_id
            )
            self.authorize_update(caller_id, current, {'status': status})
            new_status = validate_transition(current['status'], status)

            row = await conn.fetchrow(
                '''
                UPDATE orders
                SET status = $2
                WHERE id = $1
                RETURNING *
                ''',
                order_id,
                new_status.value
            )

        logger.info(f"Order {order_id}: {current['status']} -> {new_status.value}")
        return _order_view(row)

# Create global instance
manager = OrderManager()

__all__ = [
    'OrderManager',
    'manager',
    'compute_total',
    'validate_total',
    'TRANSITIONS',
    'validate_transition',
    'can_transition',
    'is_terminal'
]
