"""End-to-end tests against a real PostgreSQL database.

Set MARKETPLACE_TEST_DB_URL to a database the tests may drop and recreate.
"""

import os
import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from auth import AuthManager
from database import init_db, get_pool, acting_as, close as close_db
from engagement import CartManager, CommentManager, LikeManager, WishlistManager
from errors import AuthorizationDenied, ConstraintViolation, NotFoundError, StepError
from orders import OrderManager
from products import ProductManager
from profiles import ProfileManager

DB_URL = os.environ.get('MARKETPLACE_TEST_DB_URL')

pytestmark = pytest.mark.skipif(not DB_URL, reason="MARKETPLACE_TEST_DB_URL not set")


@pytest_asyncio.fixture
async def db_pool():
    """Fresh schema for every test."""
    await init_db(DB_URL, force_recreate=True)
    yield
    await close_db()


async def _sign_up(role='buyer', **kwargs):
    email = f"{uuid.uuid4().hex[:8]}@example.com"
    session = await AuthManager().sign_up(email, 'secret1', role=role, **kwargs)
    return session['user_id']


@pytest.mark.asyncio
async def test_sign_up_provisions_profile(db_pool):
    seller_id = await _sign_up('seller', full_name='Ana', store_name='Clay Studio')
    buyer_id = await _sign_up()

    seller = await ProfileManager().get_profile(seller_id)
    buyer = await ProfileManager().get_profile(buyer_id)

    assert seller['capability']['seller']['store_name'] == 'Clay Studio'
    assert buyer['full_name'] == 'User'
    assert buyer['capability'] == {'role': 'buyer'}


@pytest.mark.asyncio
async def test_profiles_are_private(db_pool):
    first = await _sign_up()
    second = await _sign_up()

    manager = ProfileManager()
    await manager.ensure_pool()

    with pytest.raises(NotFoundError):
        async with manager.acting_as(first) as conn:
            await manager.fetch_visible(conn, 'SELECT * FROM profiles WHERE id = $1', second)


@pytest.mark.asyncio
async def test_buy_flow(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()

    product = await ProductManager().create_product(seller_id, {
        'title': 'Handmade mug',
        'description': 'Stoneware, 300ml',
        'price': Decimal('19.99'),
        'category': 'kitchen',
        'stock': 5
    })
    await CartManager().add_to_cart(buyer_id, product['id'], 2)
    await CartManager().add_to_cart(buyer_id, product['id'], 1)

    orders = await OrderManager().checkout(buyer_id)

    assert len(orders) == 1
    assert orders[0]['quantity'] == 3
    assert orders[0]['total_price'] == Decimal('59.97')
    assert await CartManager().list_cart(buyer_id) == []

    with pytest.raises(AuthorizationDenied):
        await OrderManager().update_status(buyer_id, orders[0]['id'], 'cancelled')

    confirmed = await OrderManager().update_status(seller_id, orders[0]['id'], 'confirmed')
    assert confirmed['status'] == 'confirmed'
    assert confirmed['updated_at'] >= orders[0]['updated_at']


@pytest.mark.asyncio
async def test_inactive_product_hidden_from_buyers(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()

    product = await ProductManager().create_product(seller_id, {
        'title': 'Prototype',
        'description': 'Not for sale yet',
        'price': Decimal('5.00'),
        'category': 'misc',
        'is_active': False
    })

    with pytest.raises(NotFoundError):
        await ProductManager().get_product(buyer_id, product['id'])
    assert (await ProductManager().get_product(seller_id, product['id']))['id'] == product['id']


@pytest.mark.asyncio
async def test_checkout_rolls_back_on_inactive_product(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()

    product = await ProductManager().create_product(seller_id, {
        'title': 'Bowl',
        'description': 'Glazed',
        'price': Decimal('12.00'),
        'category': 'kitchen'
    })
    await CartManager().add_to_cart(buyer_id, product['id'], 1)
    await ProductManager().update_product(seller_id, product['id'], {'is_active': False})

    with pytest.raises(StepError) as exc_info:
        await OrderManager().checkout(buyer_id)

    assert exc_info.value.step == 'create_orders'
    assert len(await CartManager().list_cart(buyer_id)) == 1
    assert await OrderManager().list_orders(buyer_id) == []


@pytest.mark.asyncio
async def test_role_round_trip_and_wishlist_mirror(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    user_id = await _sign_up()

    profile = await ProfileManager().become_seller(user_id, {'store_name': 'Second Shop'})
    assert profile['role'] == 'seller'

    profile = await ProfileManager().back_to_buyer(user_id)
    assert profile['capability'] == {'role': 'buyer'}

    product = await ProductManager().create_product(seller_id, {
        'title': 'Vase',
        'description': 'Tall',
        'price': Decimal('40.00'),
        'category': 'decor'
    })
    assert (await WishlistManager().toggle(user_id, product['id']))['wishlisted']
    profile = await ProfileManager().get_profile(user_id)
    assert str(product['id']) in profile['wishlist']

    assert not (await WishlistManager().toggle(user_id, product['id']))['wishlisted']
    profile = await ProfileManager().get_profile(user_id)
    assert profile['wishlist'] == []


async def _product(seller_id, **overrides):
    return await ProductManager().create_product(seller_id, {
        'title': 'Cup',
        'description': 'Porcelain',
        'price': Decimal('10.00'),
        'category': 'kitchen',
        'stock': 5,
        **overrides
    })


@pytest.mark.asyncio
async def test_anonymous_caller_sees_no_member_data(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()
    product = await _product(seller_id)
    await CommentManager().add_comment(buyer_id, product['id'], 'Lovely glaze')
    await LikeManager().toggle_like(buyer_id, product['id'])

    assert await CommentManager().list_comments(None, product['id']) == []
    assert await LikeManager().count_likes(None, product['id']) == 0
    assert await ProfileManager().list_sellers(None) == []
    assert await ProductManager().list_products(None) == []

    assert len(await CommentManager().list_comments(buyer_id, product['id'])) == 1
    assert await LikeManager().count_likes(buyer_id, product['id']) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize('overrides,field', [
    ({'price': Decimal('0')}, 'price'),
    ({'price': Decimal('-5.00')}, 'price'),
    ({'stock': -1}, 'stock'),
])
async def test_out_of_range_product_is_not_stored(db_pool, overrides, field):
    seller_id = await _sign_up('seller', store_name='Clay Studio')

    with pytest.raises(ConstraintViolation) as exc_info:
        await _product(seller_id, **overrides)

    assert exc_info.value.field == field
    assert await ProductManager().list_seller_products(seller_id, seller_id) == []


@pytest.mark.asyncio
async def test_out_of_range_update_keeps_product(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    product = await _product(seller_id)

    with pytest.raises(ConstraintViolation):
        await ProductManager().update_product(seller_id, product['id'], {'stock': -3})

    stored = await ProductManager().get_product(seller_id, product['id'])
    assert stored['stock'] == 5


@pytest.mark.asyncio
async def test_outsider_cannot_see_order(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()
    outsider_id = await _sign_up()
    product = await _product(seller_id)
    order, = await OrderManager().create_order(buyer_id, [{'product_id': product['id'], 'quantity': 1}])

    with pytest.raises(NotFoundError):
        await OrderManager().get_order(outsider_id, order['id'])
    assert await OrderManager().list_orders(outsider_id) == []
    assert (await OrderManager().get_order(seller_id, order['id']))['id'] == order['id']


@pytest.mark.asyncio
async def test_terminal_status_is_final_in_database(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()
    product = await _product(seller_id)
    order, = await OrderManager().create_order(buyer_id, [{'product_id': product['id'], 'quantity': 1}])
    await OrderManager().update_status(seller_id, order['id'], 'cancelled')

    pool = await get_pool()
    with pytest.raises(ConstraintViolation) as exc_info:
        async with acting_as(pool, seller_id) as conn:
            await conn.execute("UPDATE orders SET status = 'cancelled' WHERE id = $1", order['id'])
    assert exc_info.value.constraint == 'orders_status_check'


@pytest.mark.asyncio
async def test_updated_at_is_set_by_server(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    product = await _product(seller_id)

    pool = await get_pool()
    async with acting_as(pool, seller_id) as conn:
        updated_at = await conn.fetchval(
            '''
            UPDATE products SET stock = 4, updated_at = '2000-01-01T00:00:00Z'
            WHERE id = $1
            RETURNING updated_at
            ''',
            product['id']
        )

    assert updated_at >= product['updated_at']
    assert updated_at.year > 2000


@pytest.mark.asyncio
async def test_saved_entries_removable_after_deactivation(db_pool):
    seller_id = await _sign_up('seller', store_name='Clay Studio')
    buyer_id = await _sign_up()
    product = await _product(seller_id)
    await WishlistManager().toggle(buyer_id, product['id'])
    await LikeManager().toggle_like(buyer_id, product['id'])
    await ProductManager().update_product(seller_id, product['id'], {'is_active': False})

    assert not (await WishlistManager().toggle(buyer_id, product['id']))['wishlisted']
    assert not (await LikeManager().toggle_like(buyer_id, product['id']))['liked']
    assert (await ProfileManager().get_profile(buyer_id))['wishlist'] == []
    assert await WishlistManager().list_wishlist(buyer_id) == []

    with pytest.raises(NotFoundError):
        await WishlistManager().toggle(buyer_id, product['id'])
