"""Base class shared by the entity managers.

Every manager method takes the caller's identity and runs its statements in
`acting_as(pool, caller_id)`, so row-level security filters and guards them.
Before issuing a write, the manager reads the target row under the same
policies and evaluates the policy set in Python:

- a row the caller cannot see raises NotFoundError
- a visible row the caller may not write raises AuthorizationDenied
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from errors import ConstraintViolation, NotFoundError
from policies import POLICIES, Operation

from . import get_pool, acting_as

logger = logging.getLogger(__name__)


def record(row) -> Optional[Dict[str, Any]]:
    """Convert an asyncpg Record to a plain dict."""
    return dict(row) if row is not None else None


def records(rows: Iterable) -> List[Dict[str, Any]]:
    return [dict(row) for row in rows]


def set_clause(fields: Sequence[str], start: int = 1) -> str:
    """Render `a = $1, b = $2` for an UPDATE statement."""
    return ', '.join(f"{field} = ${i}" for i, field in enumerate(fields, start))


def check_fields(changes: Mapping[str, Any], mutable_fields: Iterable[str]) -> Tuple[List[str], List[Any]]:
    """Split an update mapping into column names and values.

    Raises:
        ConstraintViolation: If a field is not caller-writable or nothing is given
    """
    mutable = set(mutable_fields)
    invalid = [field for field in changes if field not in mutable]
    if invalid:
        raise ConstraintViolation(
            f"Field cannot be updated: {invalid[0]}",
            field=invalid[0],
            constraint='mutable_fields'
        )
    if not changes:
        raise ConstraintViolation("No fields to update", constraint='mutable_fields')
    fields = list(changes)
    return fields, [changes[field] for field in fields]


class BaseManager:
    """Pool handling and policy pre-checks for entity managers."""

    table: str = ''

    def __init__(self, pool=None):
        """Initialize manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool
        self.policies = POLICIES

    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()

    def acting_as(self, caller_id):
        """Transaction whose statements run as the caller."""
        return acting_as(self.pool, caller_id)

    async def fetch_visible(self, conn, query: str, *args, table: Optional[str] = None) -> Dict[str, Any]:
        """Fetch one row under row-level security.

        Raises:
            NotFoundError: If the row is missing or hidden from the caller
        """
        row = await conn.fetchrow(query, *args)
        if row is None:
            logger.debug(f"No visible {table or self.table} row for {args}")
            raise NotFoundError()
        return dict(row)

    def authorize_insert(self, caller_id, row: Mapping[str, Any], table: Optional[str] = None):
        self.policies.authorize(table or self.table, Operation.INSERT, caller_id, row)

    def authorize_update(
        self,
        caller_id,
        row: Mapping[str, Any],
        changes: Mapping[str, Any],
        table: Optional[str] = None
    ):
        self.policies.authorize(table or self.table, Operation.UPDATE, caller_id, row, changes)

    def authorize_delete(self, caller_id, row: Mapping[str, Any], table: Optional[str] = None):
        self.policies.authorize(table or self.table, Operation.DELETE, caller_id, row)


__all__ = [
    'BaseManager',
    'record',
    'records',
    'set_clause',
    'check_fields'
]
