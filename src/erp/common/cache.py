"""Versioned in-memory entity cache used by every repository."""

from typing import Callable, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class EntityCache(Generic[T]):
    """Copy-on-write snapshot of immutable entities.

    Every mutation publishes a brand new tuple and bumps `version`, so a
    reader holding `snapshot()` keeps a consistent view while a workflow is
    still writing. Entities are expected to be frozen pydantic models.
    """

    def __init__(self, key: Callable[[T], str] = lambda entity: entity.id):
        self._key = key
        self._items: tuple[T, ...] = ()
        self.version = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def _publish(self, items: Iterable[T]) -> None:
        self._items = tuple(items)
        self.version += 1

    def snapshot(self) -> tuple[T, ...]:
        return self._items

    def get(self, entity_id: str) -> Optional[T]:
        for entity in self._items:
            if self._key(entity) == entity_id:
                return entity
        return None

    def replace_all(self, items: Iterable[T]) -> None:
        self._publish(items)

    def append(self, entity: T) -> None:
        self._publish((*self._items, entity))

    def prepend(self, entity: T) -> None:
        self._publish((entity, *self._items))

    def replace(self, entity: T) -> None:
        """Swap the entity with the same key in place; append when missing."""
        key = self._key(entity)
        if self.get(key) is None:
            self.append(entity)
            return
        self._publish(entity if self._key(e) == key else e for e in self._items)

    def remove(self, entity_id: str) -> None:
        self._publish(e for e in self._items if self._key(e) != entity_id)
