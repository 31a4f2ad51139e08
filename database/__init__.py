"""Database module for managing connections to PostgreSQL.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
- Running statements as a caller so row-level security applies
"""

import json
import logging
import ssl
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, AsyncIterator, Union
from uuid import UUID
import backoff
import asyncpg
from urllib.parse import urlparse, parse_qs

from .exceptions import DatabaseError, DatabaseSchemaError, translate_db_error
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_schema_manager: Optional[SchemaManager] = None

# Roles caller statements run as; policies are granted TO these roles
CALLER_ROLE = 'authenticated'
ANONYMOUS_ROLE = 'anon'

def _get_ssl_context() -> ssl.SSLContext:
    """Create SSL context for managed PostgreSQL connections."""
    ssl_context = ssl.create_default_context()
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    return ssl_context

def _get_connection_kwargs(db_url: str) -> Dict[str, Any]:
    """Get connection kwargs from database URL.

    Args:
        db_url: Database connection URL

    Returns:
        Dict of connection parameters
    """
    parsed = urlparse(db_url)
    params = parse_qs(parsed.query)

    kwargs: Dict[str, Any] = {
        'server_settings': {
            'statement_timeout': '60000',  # 1 minute
        }
    }

    sslmode = params.get('sslmode', ['disable'])[0]
    if sslmode in ('require', 'verify-ca', 'verify-full'):
        kwargs['ssl'] = _get_ssl_context()

    return kwargs

async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSON columns to Python objects on every pooled connection."""
    for type_name in ('json', 'jsonb'):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema='pg_catalog'
        )

def _database_name(db_url: str) -> str:
    parsed = urlparse(db_url)
    return parsed.path.strip('/') or 'postgres'

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError),
    max_tries=5
)
async def create_database_if_not_exists(db_url: str) -> None:
    """Create the database if it doesn't exist.

    Args:
        db_url: Database connection URL

    Raises:
        Exception: If database creation fails after retries
    """
    try:
        db_name = _database_name(db_url)
        if db_name == 'postgres':
            return

        # Connect to the maintenance database
        parsed = urlparse(db_url)
        base_url = parsed._replace(path='/postgres').geturl()
        logger.info(f"Connecting to postgres to create {db_name} if needed")

        conn = await asyncpg.connect(base_url, **_get_connection_kwargs(base_url))

        try:
            exists = await conn.fetchval(
                'SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = $1)',
                db_name
            )

            if not exists:
                await conn.execute(f'CREATE DATABASE "{db_name}"')
                logger.info(f"Created database {db_name}")

        finally:
            await conn.close()

    except Exception as e:
        logger.error(f"Error creating database: {e}")
        raise

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError),
    max_tries=5
)
async def init_db(db_url: Optional[str] = None, force_recreate: bool = False) -> None:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL. If not provided, will use settings.
        force_recreate: If True, drop and recreate all tables

    Raises:
        ValueError: If database URL is not provided
        Exception: If initialization fails after retries
    """
    global _pool, _schema_manager

    try:
        # Import here to avoid circular imports
        from config import settings_conf

        url = db_url or settings_conf.get('db_url')
        if not url:
            raise ValueError("Database URL not provided")

        await create_database_if_not_exists(url)

        _pool = await asyncpg.create_pool(
            url,
            min_size=settings_conf['pool_min_size'],
            max_size=settings_conf['pool_max_size'],
            max_inactive_connection_lifetime=300.0,  # 5 minutes
            command_timeout=60.0,
            init=_init_connection,
            **_get_connection_kwargs(url)
        )

        _schema_manager = SchemaManager(_pool)
        await _schema_manager.initialize(force_recreate=force_recreate)

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Returns:
        The connection pool

    Raises:
        RuntimeError: If pool hasn't been initialized
    """
    if not _pool:
        await init_db()
    if not _pool:
        raise RuntimeError("Failed to initialize database pool")
    return _pool

@asynccontextmanager
async def acting_as(pool, caller_id: Optional[Union[str, UUID]]) -> AsyncIterator[asyncpg.Connection]:
    """Open a transaction whose statements run as the given caller.

    The transaction switches to the `authenticated` role (`anon` when there
    is no caller) and sets `app.user_id`, which the `app_uid()` SQL function
    reads, so every statement is filtered by the row-level security
    policies. Any asyncpg error raised inside the block is translated to the
    marketplace error taxonomy; the transaction is rolled back.

    Args:
        pool: Database connection pool
        caller_id: Authenticated caller identity, None for anonymous
    """
    async with pool.acquire() as conn:
        try:
            async with conn.transaction():
                role = CALLER_ROLE if caller_id else ANONYMOUS_ROLE
                await conn.execute(f'SET LOCAL ROLE {role}')
                await conn.execute(
                    "SELECT set_config('app.user_id', $1, true)",
                    str(caller_id) if caller_id else ''
                )
                yield conn
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Statement failed for caller {caller_id}: {e}")
            raise translate_db_error(e) from e

async def close() -> None:
    """Close the database connection pool."""
    global _pool, _schema_manager

    if _pool:
        await _pool.close()
        _pool = None
        _schema_manager = None

# Export public interface
__all__ = [
    'init_db',
    'get_pool',
    'acting_as',
    'close',
    'DatabaseError',
    'DatabaseSchemaError',
    'translate_db_error'
]
