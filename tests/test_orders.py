"""Tests for order totals, status transitions and checkout."""

import uuid
from decimal import Decimal

import asyncpg
import pytest

from errors import ConstraintViolation, AuthorizationDenied, NotFoundError, StepError
from models import OrderStatus
from orders import (
    OrderManager, compute_total, validate_total, can_transition,
    validate_transition, is_terminal
)
from policies import POLICIES
from tests.conftest import BUYER_ID, SELLER_ID, OTHER_ID, order_row

SHIPPING = {
    'recipient': 'Ana Souza',
    'street': 'Rua das Flores',
    'city': 'Recife',
    'state': 'PE',
    'postal_code': '50000-000'
}


def _product(product_id, price='25.00', is_active=True):
    return {
        'id': product_id,
        'seller_id': uuid.UUID(SELLER_ID),
        'price': Decimal(price),
        'is_active': is_active
    }


def test_compute_total_rounds_to_cents():
    assert compute_total(Decimal('19.99'), 3) == Decimal('59.97')
    assert compute_total(Decimal('0.10'), 1) == Decimal('0.10')


def test_validate_total_accepts_matching_total():
    validate_total({'quantity': 3, 'unit_price': Decimal('19.99'), 'total_price': Decimal('59.97')})


@pytest.mark.parametrize('order,field', [
    ({'quantity': 0, 'unit_price': Decimal('1.00'), 'total_price': Decimal('0.00')}, 'quantity'),
    ({'quantity': 2, 'unit_price': Decimal('1.00'), 'total_price': Decimal('3.00')}, 'total_price'),
    ({'quantity': 100, 'unit_price': Decimal('99999999.00'), 'total_price': Decimal('9999999900.00')}, 'total_price'),
])
def test_validate_total_rejects(order, field):
    with pytest.raises(ConstraintViolation) as exc_info:
        validate_total(order)
    assert exc_info.value.field == field


def test_transitions():
    assert can_transition('pending', 'confirmed')
    assert can_transition('pending', 'cancelled')
    assert can_transition('confirmed', 'shipped')
    assert can_transition('shipped', 'delivered')
    assert not can_transition('pending', 'shipped')
    assert not can_transition('delivered', 'pending')
    assert not can_transition('confirmed', 'cancelled')
    for status in OrderStatus:
        assert not can_transition(status, status)
    assert is_terminal('delivered') and is_terminal(OrderStatus.CANCELLED)
    assert not is_terminal('shipped')


def test_validate_transition_errors():
    assert validate_transition('pending', 'confirmed') is OrderStatus.CONFIRMED
    with pytest.raises(ConstraintViolation) as exc_info:
        validate_transition('shipped', 'pending')
    assert exc_info.value.constraint == 'orders_status_check'
    with pytest.raises(ConstraintViolation):
        validate_transition('pending', 'lost')


@pytest.mark.parametrize('status', ['pending', 'delivered', 'cancelled'])
def test_status_cannot_stay_in_place(status):
    with pytest.raises(ConstraintViolation) as exc_info:
        validate_transition(status, status)
    assert exc_info.value.value == status


@pytest.mark.asyncio
async def test_create_order_prices_from_product(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [_product(product_id, '12.50'), order_row(product_id=product_id)]

    orders = await OrderManager(pool).create_order(
        BUYER_ID, [{'product_id': product_id, 'quantity': 4}], SHIPPING
    )

    assert len(orders) == 1
    insert_args = conn.fetchrow.call_args_list[1].args
    assert insert_args[1] == BUYER_ID
    assert insert_args[5] == Decimal('12.50')
    assert insert_args[6] == Decimal('50.00')
    assert insert_args[7]['version'] == 1


@pytest.mark.asyncio
async def test_create_order_rejects_inactive_product(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [_product(product_id, is_active=False)]

    with pytest.raises(ConstraintViolation) as exc_info:
        await OrderManager(pool).create_order(BUYER_ID, [{'product_id': product_id, 'quantity': 1}])
    assert exc_info.value.field == 'product_id'


@pytest.mark.asyncio
async def test_create_order_rejects_bad_shipping_address(pool):
    with pytest.raises(ConstraintViolation) as exc_info:
        await OrderManager(pool).create_order(
            BUYER_ID, [{'product_id': uuid.uuid4(), 'quantity': 1}], {'street': 'Nowhere'}
        )
    assert exc_info.value.field == 'shipping_address'


@pytest.mark.asyncio
async def test_checkout_orders_cart_and_clears_it(conn, pool):
    first, second = uuid.uuid4(), uuid.uuid4()
    conn.fetch.return_value = [
        {'product_id': first, 'quantity': 2},
        {'product_id': second, 'quantity': 1}
    ]
    conn.fetchrow.side_effect = [
        _product(first), order_row(product_id=first),
        _product(second, '10.00'), order_row(product_id=second, quantity=1)
    ]

    orders = await OrderManager(pool).checkout(BUYER_ID)

    assert [o['product_id'] for o in orders] == [first, second]
    assert 'DELETE FROM cart_items WHERE user_id = $1' in conn.statements()


@pytest.mark.asyncio
async def test_checkout_empty_cart(conn, pool):
    conn.fetch.return_value = []

    with pytest.raises(ConstraintViolation) as exc_info:
        await OrderManager(pool).checkout(BUYER_ID)
    assert not isinstance(exc_info.value, StepError)
    assert exc_info.value.field == 'cart'


@pytest.mark.asyncio
async def test_checkout_names_failing_step(conn, pool):
    product_id = uuid.uuid4()
    conn.fetch.return_value = [{'product_id': product_id, 'quantity': 1}]
    conn.fetchrow.side_effect = [_product(product_id, is_active=False)]

    with pytest.raises(StepError) as exc_info:
        await OrderManager(pool).checkout(BUYER_ID)

    assert exc_info.value.step == 'create_orders'
    assert isinstance(exc_info.value.cause, ConstraintViolation)
    assert 'DELETE FROM cart_items WHERE user_id = $1' not in conn.statements()


@pytest.mark.asyncio
async def test_checkout_hidden_product(conn, pool):
    conn.fetch.return_value = [{'product_id': uuid.uuid4(), 'quantity': 1}]
    conn.fetchrow.side_effect = [None]

    with pytest.raises(StepError) as exc_info:
        await OrderManager(pool).checkout(BUYER_ID)
    assert isinstance(exc_info.value.cause, NotFoundError)
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_checkout_database_failure_while_clearing(conn, pool):
    product_id = uuid.uuid4()
    conn.fetch.return_value = [{'product_id': product_id, 'quantity': 1}]
    conn.fetchrow.side_effect = [_product(product_id), order_row(product_id=product_id, quantity=1)]

    async def execute(query, *args):
        if query.startswith('DELETE FROM cart_items'):
            raise asyncpg.exceptions.InsufficientPrivilegeError('permission denied')
        return 'OK'
    conn.execute.side_effect = execute

    with pytest.raises(StepError) as exc_info:
        await OrderManager(pool).checkout(BUYER_ID)
    assert exc_info.value.step == 'clear_cart'
    assert isinstance(exc_info.value.cause, AuthorizationDenied)


@pytest.mark.asyncio
async def test_buyer_cannot_change_status(conn, pool):
    conn.fetchrow.side_effect = [order_row()]

    with pytest.raises(AuthorizationDenied):
        await OrderManager(pool).update_status(BUYER_ID, uuid.uuid4(), 'cancelled')


@pytest.mark.asyncio
async def test_seller_moves_order_forward(conn, pool):
    order_id = uuid.uuid4()
    conn.fetchrow.side_effect = [order_row(id=order_id), order_row(id=order_id, status='confirmed')]

    order = await OrderManager(pool).update_status(SELLER_ID, order_id, 'confirmed')

    assert order['status'] == 'confirmed'
    assert conn.fetchrow.call_args_list[1].args[2] == 'confirmed'


@pytest.mark.asyncio
async def test_seller_cannot_skip_status(conn, pool):
    conn.fetchrow.side_effect = [order_row()]

    with pytest.raises(ConstraintViolation):
        await OrderManager(pool).update_status(SELLER_ID, uuid.uuid4(), 'delivered')


@pytest.mark.asyncio
async def test_delivered_order_is_final(conn, pool):
    conn.fetchrow.side_effect = [order_row(status='delivered')]

    with pytest.raises(ConstraintViolation):
        await OrderManager(pool).update_status(SELLER_ID, uuid.uuid4(), 'delivered')
    assert conn.fetchrow.call_count == 1


@pytest.mark.asyncio
async def test_list_orders_filters(conn, pool):
    conn.fetch.return_value = [order_row()]

    orders = await OrderManager(pool).list_orders(SELLER_ID, as_role='seller', status='pending')

    query, *args = conn.fetch.call_args.args
    assert 'seller_id = $1' in query and 'status = $2' in query
    assert args == [SELLER_ID, 'pending']
    assert len(orders) == 1

    with pytest.raises(ConstraintViolation):
        await OrderManager(pool).list_orders(SELLER_ID, as_role='admin')


@pytest.mark.asyncio
async def test_outsider_cannot_read_order(conn, pool):
    conn.fetchrow.return_value = None

    with pytest.raises(NotFoundError):
        await OrderManager(pool).get_order(OTHER_ID, uuid.uuid4())
    assert not POLICIES.can_select('orders', OTHER_ID, order_row())


@pytest.mark.asyncio
async def test_outsider_lists_no_orders(conn, pool):
    conn.fetch.return_value = []

    assert await OrderManager(pool).list_orders(OTHER_ID) == []

    query, *args = conn.fetch.call_args.args
    assert '(buyer_id = $1 OR seller_id = $1)' in query
    assert args == [OTHER_ID]
    assert POLICIES.visible('orders', OTHER_ID, [order_row()]) == []
