"""Tests for carts, wishlists, likes and comments."""

import uuid

import asyncpg
import pytest

from engagement import CartManager, WishlistManager, LikeManager, CommentManager
from engagement.cart import _deleted_count
from errors import AuthorizationDenied, ConstraintViolation, NotFoundError, StepError
from tests.conftest import BUYER_ID, OTHER_ID, NOW, product_row


def _cart_item(product_id, quantity=1):
    return {
        'id': uuid.uuid4(),
        'user_id': uuid.UUID(BUYER_ID),
        'product_id': product_id,
        'quantity': quantity,
        'created_at': NOW
    }


@pytest.mark.parametrize('status,count', [
    ('DELETE 3', 3),
    ('DELETE 0', 0),
    ('', 0),
    (None, 0),
])
def test_deleted_count(status, count):
    assert _deleted_count(status) == count


@pytest.mark.asyncio
async def test_list_cart_joins_visible_products(conn, pool):
    visible, hidden = uuid.uuid4(), uuid.uuid4()
    conn.fetch.side_effect = [
        [_cart_item(visible), _cart_item(hidden)],
        [product_row(id=visible)]
    ]

    items = await CartManager(pool).list_cart(BUYER_ID)

    assert items[0]['product']['id'] == visible
    assert items[1]['product'] is None
    assert conn.fetch.call_args.args[1] == [visible, hidden]


@pytest.mark.asyncio
async def test_add_to_cart_upserts(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [{'id': product_id}, _cart_item(product_id, 3)]

    item = await CartManager(pool).add_to_cart(BUYER_ID, product_id, 2)

    query = conn.fetchrow.call_args.args[0]
    assert 'ON CONFLICT (user_id, product_id)' in query
    assert 'cart_items.quantity + EXCLUDED.quantity' in query
    assert item['quantity'] == 3


@pytest.mark.asyncio
async def test_add_to_cart_rejects_non_positive(pool):
    with pytest.raises(ConstraintViolation) as exc_info:
        await CartManager(pool).add_to_cart(BUYER_ID, uuid.uuid4(), 0)
    assert exc_info.value.field == 'quantity'


@pytest.mark.asyncio
async def test_add_hidden_product_to_cart(conn, pool):
    conn.fetchrow.return_value = None

    with pytest.raises(NotFoundError):
        await CartManager(pool).add_to_cart(BUYER_ID, uuid.uuid4())


@pytest.mark.asyncio
async def test_zero_quantity_removes_item(conn, pool):
    product_id = uuid.uuid4()
    conn.execute.return_value = 'DELETE 1'

    assert await CartManager(pool).update_quantity(BUYER_ID, product_id, 0) is None
    conn.execute.assert_any_call(
        'DELETE FROM cart_items WHERE user_id = $1 AND product_id = $2', BUYER_ID, product_id
    )


@pytest.mark.asyncio
async def test_clear_cart_counts(conn, pool):
    conn.execute.return_value = 'DELETE 2'

    assert await CartManager(pool).clear_cart(BUYER_ID) == 2


@pytest.mark.asyncio
async def test_wishlist_toggle_adds(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [None, {'id': product_id}]

    result = await WishlistManager(pool).toggle(BUYER_ID, product_id)

    assert result == {'product_id': product_id, 'wishlisted': True}
    update = next(c for c in conn.execute.call_args_list if 'UPDATE profiles' in c.args[0])
    assert update.args[1:] == (BUYER_ID, str(product_id), False)


@pytest.mark.asyncio
async def test_wishlist_toggle_removes(conn, pool):
    product_id = uuid.uuid4()
    entry_id = uuid.uuid4()
    conn.fetchrow.side_effect = [{'id': entry_id, 'user_id': uuid.UUID(BUYER_ID), 'product_id': product_id}]

    result = await WishlistManager(pool).toggle(BUYER_ID, product_id)

    assert result['wishlisted'] is False
    conn.execute.assert_any_call('DELETE FROM wishlist WHERE id = $1', entry_id)


@pytest.mark.asyncio
async def test_wishlist_entry_for_hidden_product_is_removable(conn, pool):
    product_id = uuid.uuid4()
    entry_id = uuid.uuid4()
    # the product lookup would come back empty once the seller deactivates it
    conn.fetchrow.side_effect = [
        {'id': entry_id, 'user_id': uuid.UUID(BUYER_ID), 'product_id': product_id},
        None
    ]

    result = await WishlistManager(pool).toggle(BUYER_ID, product_id)

    assert result == {'product_id': product_id, 'wishlisted': False}
    assert conn.fetchrow.call_count == 1
    conn.execute.assert_any_call('DELETE FROM wishlist WHERE id = $1', entry_id)
    update = next(c for c in conn.execute.call_args_list if 'UPDATE profiles' in c.args[0])
    assert update.args[1:] == (BUYER_ID, str(product_id), True)


@pytest.mark.asyncio
async def test_wishlist_add_hidden_product(conn, pool):
    conn.fetchrow.side_effect = [None, None]

    with pytest.raises(NotFoundError):
        await WishlistManager(pool).toggle(BUYER_ID, uuid.uuid4())
    assert not any('INSERT INTO wishlist' in s for s in conn.statements())


@pytest.mark.asyncio
async def test_wishlist_profile_sync_failure_names_step(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [None, {'id': product_id}]

    async def execute(query, *args):
        if 'UPDATE profiles' in query:
            raise asyncpg.exceptions.InsufficientPrivilegeError('permission denied')
        return 'OK'
    conn.execute.side_effect = execute

    with pytest.raises(StepError) as exc_info:
        await WishlistManager(pool).toggle(BUYER_ID, product_id)
    assert exc_info.value.step == 'update_profile'


@pytest.mark.asyncio
async def test_toggle_like(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [None, {'id': product_id}]
    conn.fetchval.return_value = 5

    result = await LikeManager(pool).toggle_like(BUYER_ID, product_id)

    assert result == {'product_id': product_id, 'liked': True, 'count': 5}


@pytest.mark.asyncio
async def test_like_on_hidden_product_is_removable(conn, pool):
    product_id = uuid.uuid4()
    like_id = uuid.uuid4()
    conn.fetchrow.side_effect = [
        {'id': like_id, 'user_id': uuid.UUID(BUYER_ID), 'product_id': product_id},
        None
    ]
    conn.fetchval.return_value = 0

    result = await LikeManager(pool).toggle_like(BUYER_ID, product_id)

    assert result == {'product_id': product_id, 'liked': False, 'count': 0}
    assert conn.fetchrow.call_count == 1
    conn.execute.assert_any_call('DELETE FROM product_likes WHERE id = $1', like_id)


@pytest.mark.asyncio
async def test_like_hidden_product(conn, pool):
    conn.fetchrow.side_effect = [None, None]

    with pytest.raises(NotFoundError):
        await LikeManager(pool).toggle_like(BUYER_ID, uuid.uuid4())


@pytest.mark.asyncio
async def test_anonymous_like_status(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchval.return_value = 7

    status = await LikeManager(pool).like_status(None, product_id)

    assert status == {'product_id': product_id, 'liked': False, 'count': 7}
    assert conn.fetchval.call_count == 1


@pytest.mark.asyncio
async def test_blank_comment_rejected(pool):
    with pytest.raises(ConstraintViolation) as exc_info:
        await CommentManager(pool).add_comment(BUYER_ID, uuid.uuid4(), '   ')
    assert exc_info.value.field == 'comment'


@pytest.mark.asyncio
async def test_add_comment_strips_text(conn, pool):
    product_id = uuid.uuid4()
    conn.fetchrow.side_effect = [{'id': product_id}, {'id': uuid.uuid4(), 'comment': 'Lovely'}]

    await CommentManager(pool).add_comment(BUYER_ID, product_id, '  Lovely ')

    assert conn.fetchrow.call_args.args[1:] == (BUYER_ID, product_id, 'Lovely')


@pytest.mark.asyncio
async def test_edit_someone_elses_comment(conn, pool):
    conn.fetchrow.side_effect = [{'id': uuid.uuid4(), 'user_id': uuid.UUID(OTHER_ID), 'comment': 'Hi'}]

    with pytest.raises(AuthorizationDenied):
        await CommentManager(pool).update_comment(BUYER_ID, uuid.uuid4(), 'Edited')
