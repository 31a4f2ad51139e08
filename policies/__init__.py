"""Authorization policy set.

Every table operation is gated by per-table, per-operation policies evaluated
against the caller's identity:

- SELECT is granted when any applicable policy's `using` predicate holds
- INSERT requires every applicable `check` predicate to hold on the new row
- UPDATE requires every `using` predicate on the stored row and every
  `check` predicate on the updated row
- DELETE requires every applicable `using` predicate
- a table operation with no applicable policy is denied

The same set is rendered to PostgreSQL row-level security statements by
`render_sql`, which the schema installs. The database enforces; the Python
evaluation lets managers raise structured errors before issuing a write.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from errors import AuthorizationDenied
from .predicates import (
    Predicate, Public, OwnerIs, AnyOwner, ColumnIsTrue, ColumnEquals,
    FirstPathSegmentIs, AllOf
)

logger = logging.getLogger(__name__)

AUTHENTICATED = 'authenticated'
PUBLIC = 'public'


class Operation(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    ALL = "all"


@dataclass(frozen=True)
class Policy:
    """One named predicate rule on one table.

    `check` defaults to `using`, matching PostgreSQL's WITH CHECK fallback.
    """
    name: str
    table: str
    operation: Operation
    using: Optional[Predicate] = None
    check: Optional[Predicate] = None
    role: str = AUTHENTICATED

    def applies_to(self, operation: Operation, caller: Any) -> bool:
        if self.operation not in (Operation.ALL, operation):
            return False
        return self.role == PUBLIC or caller is not None

    @property
    def check_predicate(self) -> Optional[Predicate]:
        return self.check or self.using

    def sql(self) -> str:
        clauses = [
            f'CREATE POLICY "{self.name}" ON {self.table}',
            f"FOR {self.operation.value.upper()}",
            f"TO {self.role}"
        ]
        if self.operation != Operation.INSERT and self.using is not None:
            clauses.append(f"USING ({self.using.sql()})")
        if self.operation in (Operation.INSERT, Operation.UPDATE, Operation.ALL) and self.check is not None:
            clauses.append(f"WITH CHECK ({self.check.sql()})")
        elif self.operation == Operation.INSERT and self.using is not None:
            clauses.append(f"WITH CHECK ({self.using.sql()})")
        return "\n".join(clauses)


WRITE_OPERATIONS = (Operation.INSERT, Operation.UPDATE, Operation.DELETE)


class PolicySet:
    """Collection of policies with evaluation and SQL rendering.

    Each table has at most one policy per write operation. PostgreSQL ORs
    permissive policies while `can_insert`, `can_update` and `can_delete`
    AND them; the two agree only while a write has a single policy.
    """

    def __init__(self, policies: Iterable[Policy]):
        self._policies: List[Policy] = list(policies)
        self._by_table: Dict[str, List[Policy]] = {}
        writers: Dict[tuple, str] = {}
        for policy in self._policies:
            for operation in WRITE_OPERATIONS:
                if policy.operation not in (Operation.ALL, operation):
                    continue
                key = (policy.table, operation)
                if key in writers:
                    raise ValueError(
                        f"{policy.table} already has a {operation.value} policy: "
                        f"{writers[key]!r} and {policy.name!r}"
                    )
                writers[key] = policy.name
            self._by_table.setdefault(policy.table, []).append(policy)

    def __iter__(self):
        return iter(self._policies)

    def tables(self) -> List[str]:
        return list(self._by_table)

    def applicable(self, table: str, operation: Operation, caller: Any) -> List[Policy]:
        return [p for p in self._by_table.get(table, []) if p.applies_to(operation, caller)]

    def can_select(self, table: str, caller: Any, row: Mapping[str, Any]) -> bool:
        return any(
            p.using is not None and p.using(caller, row)
            for p in self.applicable(table, Operation.SELECT, caller)
        )

    def visible(self, table: str, caller: Any, rows: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
        """Filter rows down to the ones the caller may read."""
        return [row for row in rows if self.can_select(table, caller, row)]

    def can_insert(self, table: str, caller: Any, row: Mapping[str, Any]) -> bool:
        policies = self.applicable(table, Operation.INSERT, caller)
        return bool(policies) and all(
            p.check_predicate is not None and p.check_predicate(caller, row)
            for p in policies
        )

    def can_update(
        self,
        table: str,
        caller: Any,
        old_row: Mapping[str, Any],
        new_row: Mapping[str, Any]
    ) -> bool:
        policies = self.applicable(table, Operation.UPDATE, caller)
        if not policies:
            return False
        for p in policies:
            if p.using is not None and not p.using(caller, old_row):
                return False
            check = p.check_predicate
            if check is not None and not check(caller, new_row):
                return False
        return True

    def can_delete(self, table: str, caller: Any, row: Mapping[str, Any]) -> bool:
        policies = self.applicable(table, Operation.DELETE, caller)
        return bool(policies) and all(
            p.using is not None and p.using(caller, row) for p in policies
        )

    def authorize(
        self,
        table: str,
        operation: Operation,
        caller: Any,
        row: Mapping[str, Any],
        new_row: Optional[Mapping[str, Any]] = None
    ) -> None:
        """Raise AuthorizationDenied unless the operation is permitted.

        Args:
            table: Table name
            operation: Operation kind (not ALL)
            caller: Caller identity, None for anonymous
            row: The stored row (select/update/delete) or the new row (insert)
            new_row: The updated row, for updates; merged over `row` if partial
        """
        if operation == Operation.SELECT:
            allowed = self.can_select(table, caller, row)
        elif operation == Operation.INSERT:
            allowed = self.can_insert(table, caller, row)
        elif operation == Operation.UPDATE:
            allowed = self.can_update(table, caller, row, {**row, **(new_row or {})})
        elif operation == Operation.DELETE:
            allowed = self.can_delete(table, caller, row)
        else:
            raise ValueError(f"Cannot authorize operation {operation}")

        if not allowed:
            logger.info(f"Denied {operation.value} on {table} for caller {caller}")
            raise AuthorizationDenied()

    def render_sql(self) -> List[str]:
        """Render row-level security statements for every table in the set."""
        statements = []
        for table, policies in self._by_table.items():
            statements.append(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
            for policy in policies:
                statements.append(f'DROP POLICY IF EXISTS "{policy.name}" ON {table}')
                statements.append(policy.sql())
        return statements


POLICIES = PolicySet([
    # profiles: rows are created by the provisioning trigger only
    Policy("Users can read own profile", "profiles", Operation.SELECT, using=OwnerIs("id")),
    Policy("Users can update own profile", "profiles", Operation.UPDATE,
           using=OwnerIs("id"), check=OwnerIs("id")),

    # sellers
    Policy("Sellers can manage own store", "sellers", Operation.ALL, using=OwnerIs("user_id")),
    Policy("Anyone can read seller info", "sellers", Operation.SELECT, using=Public()),

    # products
    Policy("Sellers can manage own products", "products", Operation.ALL, using=OwnerIs("seller_id")),
    Policy("Anyone can read active products", "products", Operation.SELECT,
           using=ColumnIsTrue("is_active")),

    # orders
    Policy("Users can read own orders", "orders", Operation.SELECT,
           using=AnyOwner("buyer_id", "seller_id")),
    Policy("Buyers can create orders", "orders", Operation.INSERT, check=OwnerIs("buyer_id")),
    Policy("Sellers can update order status", "orders", Operation.UPDATE,
           using=OwnerIs("seller_id")),

    # messages
    Policy("Users can read own messages", "messages", Operation.SELECT,
           using=AnyOwner("from_user_id", "to_user_id")),
    Policy("Users can send messages", "messages", Operation.INSERT, check=OwnerIs("from_user_id")),
    Policy("Recipients can mark messages read", "messages", Operation.UPDATE,
           using=OwnerIs("to_user_id")),

    # cart_items
    Policy("Users can manage own cart", "cart_items", Operation.ALL, using=OwnerIs("user_id")),

    # wishlist
    Policy("Users can manage own wishlist", "wishlist", Operation.ALL,
           using=OwnerIs("user_id"), check=OwnerIs("user_id")),

    # product_likes
    Policy("Users can read all likes", "product_likes", Operation.SELECT, using=Public()),
    Policy("Users can manage own likes", "product_likes", Operation.ALL,
           using=OwnerIs("user_id"), check=OwnerIs("user_id")),

    # product_comments
    Policy("Users can read all comments", "product_comments", Operation.SELECT, using=Public()),
    Policy("Users can create comments", "product_comments", Operation.INSERT,
           check=OwnerIs("user_id")),
    Policy("Users can update own comments", "product_comments", Operation.UPDATE,
           using=OwnerIs("user_id"), check=OwnerIs("user_id")),

    # storage_objects: avatars bucket keyed by {caller_id}/{filename}
    Policy("Avatar images are publicly accessible", "storage_objects", Operation.SELECT,
           using=ColumnEquals("bucket_id", "avatars"), role=PUBLIC),
    Policy("Users can upload avatar images", "storage_objects", Operation.INSERT,
           check=AllOf(ColumnEquals("bucket_id", "avatars"), FirstPathSegmentIs("name"))),
    Policy("Users can update own avatar images", "storage_objects", Operation.UPDATE,
           using=AllOf(ColumnEquals("bucket_id", "avatars"), FirstPathSegmentIs("name"))),
    Policy("Users can delete own avatar images", "storage_objects", Operation.DELETE,
           using=AllOf(ColumnEquals("bucket_id", "avatars"), FirstPathSegmentIs("name"))),
])


def render_sql(policy_set: Optional[PolicySet] = None) -> List[str]:
    """Render the canonical (or given) policy set to SQL statements."""
    return (policy_set or POLICIES).render_sql()


__all__ = [
    'Operation',
    'Policy',
    'PolicySet',
    'POLICIES',
    'render_sql',
    'Predicate',
    'Public',
    'OwnerIs',
    'AnyOwner',
    'ColumnIsTrue',
    'ColumnEquals',
    'FirstPathSegmentIs',
    'AllOf',
    'AUTHENTICATED',
    'PUBLIC'
]
