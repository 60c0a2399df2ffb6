"""Keyed in-memory repository with per-entity atomic updates."""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Iterator, TypeVar

from payment_recovery.exceptions import EntityNotFoundError, InvalidEntityStateError

T = TypeVar("T")
R = TypeVar("R")


class Repository(Generic[T]):
    """Entities keyed by id, each guarded by its own lock.

    ``update`` and ``compare_and_set`` are the only sanctioned ways to mutate
    a stored entity; they run under the entity's lock so concurrent callers
    never interleave a read-modify-write on the same key.

    Parameters
    ----------
    entity_name : str
        Human-readable name used in error messages (e.g. ``"Attempt"``).
    key : Callable[[T], str]
        Extracts the id from an entity.
    """

    def __init__(self, entity_name: str, key: Callable[[T], str]) -> None:
        self.entity_name = entity_name
        self._key = key
        self._items: dict[str, T] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(self.values())

    def add(self, entity: T) -> T:
        """Insert a new entity. Ids are never reused."""
        entity_id = self._key(entity)
        with self._guard:
            if entity_id in self._items:
                raise InvalidEntityStateError(f"{self.entity_name} {entity_id} already exists")
            self._items[entity_id] = entity
            self._locks[entity_id] = threading.RLock()
        return entity

    def get(self, entity_id: str) -> T:
        """Return the entity or raise ``EntityNotFoundError``."""
        try:
            return self._items[entity_id]
        except KeyError:
            raise EntityNotFoundError(f"{self.entity_name} {entity_id} not found") from None

    def find(self, entity_id: str) -> T | None:
        return self._items.get(entity_id)

    def values(self) -> list[T]:
        """Snapshot of all entities in insertion order."""
        with self._guard:
            return list(self._items.values())

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [item for item in self.values() if predicate(item)]

    def lock_for(self, entity_id: str) -> threading.RLock:
        self.get(entity_id)
        return self._locks[entity_id]

    def update(self, entity_id: str, mutate: Callable[[T], R]) -> R:
        """Apply ``mutate`` to the entity while holding its lock."""
        entity = self.get(entity_id)
        with self._locks[entity_id]:
            return mutate(entity)

    def compare_and_set(self, entity_id: str, attr: str, expected: Any, new: Any) -> bool:
        """Set ``attr`` to ``new`` only if it currently equals ``expected``.

        Returns
        -------
        bool
            True if this caller won the swap.
        """
        entity = self.get(entity_id)
        with self._locks[entity_id]:
            if getattr(entity, attr) != expected:
                return False
            setattr(entity, attr, new)
            return True
