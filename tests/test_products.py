"""Tests for the product catalog manager."""

import uuid
from decimal import Decimal

import asyncpg
import pytest

from database.manager import check_fields
from errors import AuthorizationDenied, ConstraintViolation, NotFoundError
from products import ProductManager, MUTABLE_FIELDS
from tests.conftest import BUYER_ID, SELLER_ID, NOW, product_row


@pytest.mark.asyncio
async def test_create_product_owned_by_caller(conn, pool):
    conn.fetchrow.return_value = product_row()

    await ProductManager(pool).create_product(SELLER_ID, {
        'title': 'Handmade mug',
        'description': 'Stoneware, 300ml',
        'price': Decimal('25.00'),
        'category': 'kitchen',
        'seller_id': BUYER_ID
    })

    query, *args = conn.fetchrow.call_args.args
    assert query.split('(')[1].split(')')[0].split(', ')[0] == 'seller_id'
    assert args[0] == SELLER_ID
    assert BUYER_ID not in args


@pytest.mark.asyncio
@pytest.mark.parametrize('constraint,field', [
    ('products_price_check', 'price'),
    ('products_stock_check', 'stock'),
])
async def test_create_product_check_violation(conn, pool, constraint, field):
    error = asyncpg.exceptions.CheckViolationError('new row violates check constraint')
    error.table_name = 'products'
    error.constraint_name = constraint
    conn.fetchrow.side_effect = error

    with pytest.raises(ConstraintViolation) as exc_info:
        await ProductManager(pool).create_product(SELLER_ID, {
            'title': 'Handmade mug',
            'description': 'Stoneware, 300ml',
            'price': Decimal('0'),
            'stock': -1,
            'category': 'kitchen'
        })
    assert exc_info.value.field == field
    assert exc_info.value.constraint == constraint


@pytest.mark.asyncio
async def test_update_product_cannot_set_timestamps(conn, pool):
    with pytest.raises(ConstraintViolation) as exc_info:
        await ProductManager(pool).update_product(SELLER_ID, uuid.uuid4(), {'updated_at': '2000-01-01'})

    assert exc_info.value.field == 'updated_at'
    assert conn.fetchrow.call_count == 0


@pytest.mark.parametrize('changes', [{'updated_at': NOW}, {'created_at': NOW}, {'id': uuid.uuid4()}, {}])
def test_check_fields_rejects_server_fields(changes):
    with pytest.raises(ConstraintViolation):
        check_fields(changes, MUTABLE_FIELDS)


@pytest.mark.asyncio
async def test_list_products_builds_filters(conn, pool):
    conn.fetch.return_value = [product_row()]

    products = await ProductManager(pool).list_products(None, category='kitchen', search='mug', limit=10, offset=20)

    query, *args = conn.fetch.call_args.args
    assert 'category = $1' in query
    assert 'title ILIKE $2 OR description ILIKE $2' in query
    assert 'LIMIT $3 OFFSET $4' in query
    assert args == ['kitchen', '%mug%', 10, 20]
    assert len(products) == 1


@pytest.mark.asyncio
async def test_anonymous_browsing_runs_as_anon(conn, pool):
    await ProductManager(pool).list_products(None)

    statements = conn.statements()
    assert 'SET LOCAL ROLE anon' in statements
    assert 'SET LOCAL ROLE authenticated' not in statements


@pytest.mark.asyncio
async def test_list_products_without_filters(conn, pool):
    await ProductManager(pool).list_products(BUYER_ID)

    query, *args = conn.fetch.call_args.args
    assert 'WHERE is_active' in query
    assert args == [50, 0]


@pytest.mark.asyncio
async def test_get_hidden_product(conn, pool):
    conn.fetchrow.return_value = None

    with pytest.raises(NotFoundError):
        await ProductManager(pool).get_product(BUYER_ID, uuid.uuid4())


@pytest.mark.asyncio
async def test_update_other_sellers_product_denied(conn, pool):
    conn.fetchrow.side_effect = [product_row()]

    with pytest.raises(AuthorizationDenied):
        await ProductManager(pool).update_product(BUYER_ID, uuid.uuid4(), {'price': Decimal('1.00')})


@pytest.mark.asyncio
async def test_update_product_cannot_reassign_seller(pool):
    with pytest.raises(ConstraintViolation) as exc_info:
        await ProductManager(pool).update_product(SELLER_ID, uuid.uuid4(), {'seller_id': BUYER_ID})
    assert exc_info.value.field == 'seller_id'


@pytest.mark.asyncio
async def test_update_product(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [product_row(id=product_id), product_row(id=product_id, stock=0, is_active=False)]

    product = await ProductManager(pool).update_product(SELLER_ID, product_id, {'stock': 0, 'is_active': False})

    query, *args = conn.fetchrow.call_args.args
    assert 'SET stock = $2, is_active = $3' in query
    assert args == [product_id, 0, False]
    assert product['is_active'] is False


@pytest.mark.asyncio
async def test_delete_product(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.return_value = product_row(id=product_id)

    await ProductManager(pool).delete_product(SELLER_ID, product_id)

    conn.execute.assert_any_call('DELETE FROM products WHERE id = $1', product_id)


@pytest.mark.asyncio
async def test_delete_product_denied_for_others(conn, pool):
    conn.fetchrow.return_value = product_row()

    with pytest.raises(AuthorizationDenied):
        await ProductManager(pool).delete_product(BUYER_ID, uuid.uuid4())
    assert not any(s.startswith('DELETE') for s in conn.statements())
