"""Database exceptions and asyncpg error translation."""

from typing import Optional

import asyncpg

from errors import (
    MarketplaceError, ConstraintViolation, AuthorizationDenied, TransientError
)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema loading or migration fails."""
    pass


CONSTRAINT_SUFFIXES = ('_check', '_key', '_fkey', '_pkey')

TRANSIENT_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.TooManyConnectionsError,
    ConnectionError,
    OSError
)


def field_from_constraint(table: Optional[str], constraint: Optional[str]) -> Optional[str]:
    """Recover the column name from a constraint named `<table>_<column>_<suffix>`.

    Composite unique keys come back joined, e.g. `user_id_product_id`.
    """
    if not constraint:
        return None
    name = constraint
    if table and name.startswith(f"{table}_"):
        name = name[len(table) + 1:]
    for suffix in CONSTRAINT_SUFFIXES:
        if name.endswith(suffix):
            return name[:-len(suffix)]
    return name


def translate_db_error(error: Exception) -> MarketplaceError:
    """Map an asyncpg (or socket) error onto the marketplace error taxonomy.

    Errors that are already MarketplaceErrors pass through unchanged. Anything
    unrecognized becomes a bare MarketplaceError so it still surfaces.
    """
    if isinstance(error, MarketplaceError):
        return error

    table = getattr(error, 'table_name', None)
    constraint = getattr(error, 'constraint_name', None)

    if isinstance(error, asyncpg.exceptions.NotNullViolationError):
        column = getattr(error, 'column_name', None)
        return ConstraintViolation(
            f"{column or 'value'} is required",
            field=column,
            constraint='not_null'
        )

    if isinstance(error, asyncpg.exceptions.UniqueViolationError):
        return ConstraintViolation(
            "Row already exists",
            field=field_from_constraint(table, constraint),
            value=getattr(error, 'detail', None),
            constraint=constraint
        )

    if isinstance(error, asyncpg.exceptions.CheckViolationError):
        return ConstraintViolation(
            f"Check constraint {constraint} failed",
            field=field_from_constraint(table, constraint),
            value=getattr(error, 'detail', None),
            constraint=constraint
        )

    if isinstance(error, asyncpg.exceptions.ForeignKeyViolationError):
        return ConstraintViolation(
            "Referenced row does not exist",
            field=field_from_constraint(table, constraint),
            value=getattr(error, 'detail', None),
            constraint=constraint
        )

    if isinstance(error, asyncpg.exceptions.InsufficientPrivilegeError):
        return AuthorizationDenied()

    if isinstance(error, asyncpg.exceptions.DataError):
        return ConstraintViolation(str(error), constraint='data')

    if isinstance(error, TRANSIENT_ERRORS):
        return TransientError()

    return MarketplaceError(str(error))


__all__ = [
    'DatabaseError',
    'DatabaseSchemaError',
    'translate_db_error',
    'field_from_constraint'
]
