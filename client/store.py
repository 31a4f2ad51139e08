"""Local view state mirroring server rows.

A ViewStore holds named collections of rows keyed by an identity field and
changes them only through reducer-style operations. Fetches open a ticket
with `begin(collection)`; a result applied with a ticket that has been
superseded by a newer fetch of the same collection, or invalidated by
`detach()`, is discarded, so a slow response never overwrites a newer one.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_KEYS = {
    'cart': 'product_id',
    'wishlist': 'product_id',
    'likes': 'product_id',
    'sellers': 'user_id'
}


@dataclass(frozen=True)
class Ticket:
    """Handle for one in-flight fetch of a collection."""
    collection: str
    sequence: int
    generation: int


def _normalize(key: Any) -> str:
    return str(key).lower()


class ViewStore:
    """Collections of server rows with stale-result protection."""

    def __init__(self, keys: Optional[Mapping[str, str]] = None):
        self._keys: Dict[str, str] = {**DEFAULT_KEYS, **(keys or {})}
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._sequences: Dict[str, int] = {}
        self._generation = 0
        self._listeners: List[Callable[[str], None]] = []

    def key_field(self, collection: str) -> str:
        return self._keys.get(collection, 'id')

    def _rows(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            listener(collection)

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Call `listener(collection)` after every applied change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # Reads

    def get(self, collection: str, key: Any) -> Optional[Dict[str, Any]]:
        row = self._collections.get(collection, {}).get(_normalize(key))
        return dict(row) if row is not None else None

    def all(self, collection: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._collections.get(collection, {}).values()]

    def __contains__(self, collection: str) -> bool:
        return collection in self._collections

    # Tickets

    def begin(self, collection: str) -> Ticket:
        """Open a fetch ticket, superseding earlier tickets for the collection."""
        sequence = self._sequences.get(collection, 0) + 1
        self._sequences[collection] = sequence
        return Ticket(collection, sequence, self._generation)

    def is_current(self, ticket: Ticket) -> bool:
        return (
            ticket.generation == self._generation
            and ticket.sequence == self._sequences.get(ticket.collection)
        )

    def detach(self) -> None:
        """Invalidate every outstanding ticket."""
        self._generation += 1

    def _accept(self, collection: str, ticket: Optional[Ticket]) -> bool:
        if ticket is None:
            return True
        if ticket.collection != collection:
            raise ValueError(f"Ticket for {ticket.collection} used on {collection}")
        if not self.is_current(ticket):
            logger.debug(f"Discarding stale result for {collection}")
            return False
        return True

    # Reducers

    def replace(self, collection: str, rows: Iterable[Mapping[str, Any]], ticket: Optional[Ticket] = None) -> bool:
        """Replace a whole collection with fetched rows.

        Returns:
            False if the result was stale and discarded
        """
        if not self._accept(collection, ticket):
            return False
        field = self.key_field(collection)
        self._collections[collection] = {_normalize(row[field]): dict(row) for row in rows}
        self._notify(collection)
        return True

    def upsert(self, collection: str, row: Mapping[str, Any], ticket: Optional[Ticket] = None) -> bool:
        """Insert a row or merge it over the stored one."""
        if not self._accept(collection, ticket):
            return False
        rows = self._rows(collection)
        key = _normalize(row[self.key_field(collection)])
        rows[key] = {**rows.get(key, {}), **dict(row)}
        self._notify(collection)
        return True

    def patch(self, collection: str, key: Any, changes: Mapping[str, Any]) -> bool:
        """Merge changes into a stored row; missing rows are left alone."""
        rows = self._rows(collection)
        key = _normalize(key)
        if key not in rows:
            return False
        rows[key] = {**rows[key], **dict(changes)}
        self._notify(collection)
        return True

    def remove(self, collection: str, key: Any) -> bool:
        removed = self._rows(collection).pop(_normalize(key), None) is not None
        if removed:
            self._notify(collection)
        return removed

    def clear(self, collection: Optional[str] = None) -> None:
        """Empty one collection, or every collection."""
        if collection is None:
            names = list(self._collections)
            self._collections.clear()
        else:
            names = [collection]
            self._collections.pop(collection, None)
        for name in names:
            self._notify(name)


__all__ = ['ViewStore', 'Ticket', 'DEFAULT_KEYS']
