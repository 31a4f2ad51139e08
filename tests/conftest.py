"""Shared fixtures: a fake asyncpg pool and an API client with auth overridden."""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

BUYER_ID = str(uuid.uuid4())
SELLER_ID = str(uuid.uuid4())
OTHER_ID = str(uuid.uuid4())
NOW = datetime(2025, 11, 3, 14, 33, 18, tzinfo=timezone.utc)


class FakeConnection:
    """Stands in for an asyncpg connection; results are set per test."""

    def __init__(self):
        self.fetchrow = AsyncMock(return_value=None)
        self.fetch = AsyncMock(return_value=[])
        self.fetchval = AsyncMock(return_value=None)
        self.execute = AsyncMock(return_value='OK')
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    def statements(self):
        """Every SQL statement sent through execute, in order."""
        return [c.args[0] for c in self.execute.call_args_list]


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def product_row(**overrides):
    row = {
        'id': uuid.uuid4(),
        'seller_id': uuid.UUID(SELLER_ID),
        'title': 'Handmade mug',
        'description': 'Stoneware, 300ml',
        'price': Decimal('25.00'),
        'stock': 4,
        'category': 'kitchen',
        'image_url': None,
        'video_url': None,
        'is_active': True,
        'created_at': NOW,
        'updated_at': NOW
    }
    row.update(overrides)
    return row


def profile_row(**overrides):
    row = {
        'id': uuid.UUID(BUYER_ID),
        'full_name': 'Ana Souza',
        'role': 'buyer',
        'email': 'ana@example.com',
        'phone': None,
        'profile_image': None,
        'bio': None,
        'wishlist': [],
        'created_at': NOW,
        'updated_at': NOW
    }
    row.update(overrides)
    return row


def seller_row(**overrides):
    row = {
        'id': 1,
        'user_id': uuid.UUID(SELLER_ID),
        'store_name': 'Clay Studio',
        'store_description': None,
        'store_address': None,
        'payment_info': {},
        'is_verified': False,
        'created_at': NOW,
        'updated_at': NOW
    }
    row.update(overrides)
    return row


def order_row(**overrides):
    row = {
        'id': uuid.uuid4(),
        'buyer_id': uuid.UUID(BUYER_ID),
        'seller_id': uuid.UUID(SELLER_ID),
        'product_id': uuid.uuid4(),
        'quantity': 2,
        'unit_price': Decimal('25.00'),
        'total_price': Decimal('50.00'),
        'status': 'pending',
        'shipping_address': None,
        'created_at': NOW,
        'updated_at': NOW
    }
    row.update(overrides)
    return row


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def pool(conn):
    return FakePool(conn)


@pytest.fixture
def api_client():
    """TestClient whose requests are authenticated as the buyer."""
    from api import app
    from auth import get_current_user, get_optional_user

    app.dependency_overrides[get_current_user] = lambda: BUYER_ID
    app.dependency_overrides[get_optional_user] = lambda: BUYER_ID
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
