"""Tests for profile provisioning, profile updates and role transitions."""

import uuid

import asyncpg
import pytest

from errors import ConstraintViolation, NotFoundError, StepError
from profiles import ProfileManager
from profiles.provisioning import profile_defaults, provision_profile
from tests.conftest import BUYER_ID, SELLER_ID, profile_row, seller_row


@pytest.mark.parametrize('metadata,expected', [
    (None, {'full_name': 'User', 'role': 'buyer', 'store_name': None}),
    ({'full_name': '  '}, {'full_name': 'User', 'role': 'buyer', 'store_name': None}),
    ({'full_name': 'Ana', 'role': 'seller'}, {'full_name': 'Ana', 'role': 'seller', 'store_name': 'Ana'}),
    ({'full_name': 'Ana', 'role': 'seller', 'store_name': 'Clay Studio'},
     {'full_name': 'Ana', 'role': 'seller', 'store_name': 'Clay Studio'}),
])
def test_profile_defaults(metadata, expected):
    assert profile_defaults(metadata) == expected


@pytest.mark.asyncio
async def test_provision_creates_profile_and_store(conn):
    identity_id = uuid.uuid4()
    conn.fetchval.return_value = identity_id

    created = await provision_profile(conn, {
        'id': identity_id,
        'email': 'ana@example.com',
        'raw_user_meta_data': {'full_name': 'Ana', 'role': 'seller'}
    })

    assert created
    assert conn.fetchval.call_args.args[1:] == (identity_id, 'Ana', 'ana@example.com', 'seller')
    assert conn.execute.call_args.args[1:] == (identity_id, 'Ana')


@pytest.mark.asyncio
async def test_provision_is_idempotent(conn):
    conn.fetchval.return_value = None

    created = await provision_profile(conn, {
        'id': uuid.uuid4(),
        'email': 'ana@example.com',
        'raw_user_meta_data': {}
    })

    assert not created
    conn.execute.assert_not_called()


@pytest.mark.asyncio
async def test_get_profile_attaches_capability(conn, pool):
    conn.fetchrow.side_effect = [profile_row(id=uuid.UUID(SELLER_ID), role='seller'), seller_row()]

    profile = await ProfileManager(pool).get_profile(SELLER_ID)

    assert profile['capability']['role'] == 'seller'
    assert profile['capability']['seller']['store_name'] == 'Clay Studio'
    assert profile['capability']['seller']['payment_info'] is None


@pytest.mark.asyncio
async def test_get_missing_profile(conn, pool):
    conn.fetchrow.side_effect = [None]

    with pytest.raises(NotFoundError):
        await ProfileManager(pool).get_profile(BUYER_ID)


@pytest.mark.asyncio
async def test_update_profile_rejects_protected_fields(pool):
    manager = ProfileManager(pool)
    for field in ('role', 'email', 'id'):
        with pytest.raises(ConstraintViolation) as exc_info:
            await manager.update_profile(BUYER_ID, {field: 'x'})
        assert exc_info.value.field == field
    with pytest.raises(ConstraintViolation):
        await manager.update_profile(BUYER_ID, {})


@pytest.mark.asyncio
async def test_update_profile(conn, pool):
    conn.fetchrow.side_effect = [profile_row(), profile_row(bio='Potter'), None]

    profile = await ProfileManager(pool).update_profile(BUYER_ID, {'bio': 'Potter'})

    query = conn.fetchrow.call_args_list[1].args[0]
    assert 'SET bio = $2' in query
    assert profile['bio'] == 'Potter'
    assert profile['capability'] == {'role': 'buyer'}


@pytest.mark.asyncio
async def test_become_seller(conn, pool):
    conn.fetchrow.side_effect = [
        profile_row(),
        profile_row(role='seller'),
        seller_row(user_id=uuid.UUID(BUYER_ID), store_name='Ana Ceramics')
    ]

    profile = await ProfileManager(pool).become_seller(BUYER_ID, {'store_name': 'Ana Ceramics'})

    assert profile['role'] == 'seller'
    assert profile['capability']['seller']['store_name'] == 'Ana Ceramics'
    insert_args = conn.fetchrow.call_args_list[2].args
    assert insert_args[1] == BUYER_ID
    assert insert_args[5] == {}


@pytest.mark.asyncio
async def test_become_seller_twice(conn, pool):
    conn.fetchrow.side_effect = [profile_row(role='seller')]

    with pytest.raises(ConstraintViolation) as exc_info:
        await ProfileManager(pool).become_seller(BUYER_ID, {'store_name': 'Again'})
    assert exc_info.value.field == 'role'


@pytest.mark.asyncio
async def test_become_seller_store_failure_names_step(conn, pool):
    error = asyncpg.exceptions.CheckViolationError('check failed')
    error.table_name = 'sellers'
    error.constraint_name = 'sellers_store_name_check'
    conn.fetchrow.side_effect = [profile_row(), profile_row(role='seller'), error]

    with pytest.raises(StepError) as exc_info:
        await ProfileManager(pool).become_seller(BUYER_ID, {'store_name': ' '})

    assert exc_info.value.step == 'create_seller'
    assert exc_info.value.cause.field == 'store_name'


@pytest.mark.asyncio
async def test_become_seller_rejects_bad_payment_info(pool):
    with pytest.raises(ConstraintViolation) as exc_info:
        await ProfileManager(pool).become_seller(
            BUYER_ID, {'store_name': 'Shop', 'payment_info': {'method': 'barter'}}
        )
    assert exc_info.value.field == 'payment_info'


@pytest.mark.asyncio
async def test_back_to_buyer_deletes_store(conn, pool):
    seller_id = uuid.UUID(SELLER_ID)
    conn.fetchrow.side_effect = [
        profile_row(id=seller_id, role='seller'),
        profile_row(id=seller_id, role='buyer'),
        seller_row()
    ]

    profile = await ProfileManager(pool).back_to_buyer(SELLER_ID)

    assert profile['capability'] == {'role': 'buyer'}
    assert 'DELETE FROM sellers WHERE user_id = $1' in conn.statements()


@pytest.mark.asyncio
async def test_back_to_buyer_requires_seller(conn, pool):
    conn.fetchrow.side_effect = [profile_row()]

    with pytest.raises(ConstraintViolation):
        await ProfileManager(pool).back_to_buyer(BUYER_ID)


@pytest.mark.asyncio
async def test_update_seller_normalizes_payment_info(conn, pool):
    conn.fetchrow.side_effect = [
        seller_row(),
        seller_row(payment_info={'version': 1, 'method': 'pix', 'pix_key': 'k'})
    ]

    seller = await ProfileManager(pool).update_seller(
        SELLER_ID, {'payment_info': {'method': 'pix', 'pix_key': 'k'}}
    )

    blob = conn.fetchrow.call_args_list[1].args[2]
    assert blob['version'] == 1 and blob['pix_key'] == 'k'
    assert seller['payment_info'].method == 'pix'
