"""Row predicates used by policies.

A predicate is evaluated in two places: in Python against a row dict, and in
PostgreSQL as the rendered SQL expression. Both renditions must agree.
`app_uid()` is the SQL function returning the caller's identity.
"""

from typing import Any, Mapping, Optional


def _same_identity(value: Any, caller: Any) -> bool:
    if value is None or caller is None:
        return False
    return str(value).lower() == str(caller).lower()


class Predicate:
    """Boolean rule over (caller, row)."""

    def __call__(self, caller: Any, row: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def sql(self) -> str:
        raise NotImplementedError

    def __and__(self, other: 'Predicate') -> 'Predicate':
        return AllOf(self, other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.sql()})"


class Public(Predicate):
    """Always true."""

    def __call__(self, caller, row):
        return True

    def sql(self):
        return "true"


class OwnerIs(Predicate):
    """The row's owner column equals the caller."""

    def __init__(self, column: str):
        self.column = column

    def __call__(self, caller, row):
        return _same_identity(row.get(self.column), caller)

    def sql(self):
        return f"{self.column} = app_uid()"


class AnyOwner(Predicate):
    """The caller appears in any of the given columns (e.g. buyer or seller)."""

    def __init__(self, *columns: str):
        self.columns = columns

    def __call__(self, caller, row):
        return any(_same_identity(row.get(c), caller) for c in self.columns)

    def sql(self):
        return " OR ".join(f"{c} = app_uid()" for c in self.columns)


class ColumnIsTrue(Predicate):
    """A boolean column is true (e.g. active products)."""

    def __init__(self, column: str):
        self.column = column

    def __call__(self, caller, row):
        return row.get(self.column) is True

    def sql(self):
        return f"{self.column} = true"


class ColumnEquals(Predicate):
    """A text column equals a literal."""

    def __init__(self, column: str, value: str):
        self.column = column
        self.value = value

    def __call__(self, caller, row):
        return row.get(self.column) == self.value

    def sql(self):
        literal = self.value.replace("'", "''")
        return f"{self.column} = '{literal}'"


class FirstPathSegmentIs(Predicate):
    """The first `/`-separated segment of an object path equals the caller."""

    def __init__(self, column: str = 'name'):
        self.column = column

    def __call__(self, caller, row):
        path: Optional[str] = row.get(self.column)
        if not path:
            return False
        return _same_identity(path.split('/', 1)[0], caller)

    def sql(self):
        return f"split_part({self.column}, '/', 1) = app_uid()::text"


class AllOf(Predicate):
    """Conjunction of predicates."""

    def __init__(self, *predicates: Predicate):
        self.predicates = predicates

    def __call__(self, caller, row):
        return all(p(caller, row) for p in self.predicates)

    def sql(self):
        return " AND ".join(f"({p.sql()})" for p in self.predicates)
