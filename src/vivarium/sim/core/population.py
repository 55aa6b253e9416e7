from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Optional

from .entity import Entity
from .errors import CapacityExceededRecoverable

logger = logging.getLogger(__name__)


class PopulationStore:
    """Insertion-ordered set of live entities with a hard capacity.

    Every entity leaving the store goes through ``release`` exactly once.
    """

    def __init__(self, max_models: int, release: Callable[[Entity], None]):
        if max_models < 1:
            raise ValueError("max_models must be at least 1")
        self._max_models = max_models
        self._release = release
        self._entities: List[Entity] = []

    @property
    def max_models(self) -> int:
        return self._max_models

    @property
    def entities(self) -> tuple[Entity, ...]:
        return tuple(self._entities)

    @property
    def is_full(self) -> bool:
        return len(self._entities) >= self._max_models

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[Entity]:
        return iter(tuple(self._entities))

    def __contains__(self, entity: object) -> bool:
        return any(existing is entity for existing in self._entities)

    def get(self, entity_id: int) -> Optional[Entity]:
        for entity in self._entities:
            if entity.id == entity_id:
                return entity
        return None

    def try_append(self, entity: Entity) -> None:
        if self.is_full:
            raise CapacityExceededRecoverable(self._max_models)
        self._entities.append(entity)

    def admit(self, entity: Entity) -> Optional[Entity]:
        """Append ``entity``, evicting the oldest one first when full."""
        evicted = None
        try:
            self.try_append(entity)
        except CapacityExceededRecoverable:
            evicted = self._entities.pop(0)
            self._release(evicted)
            logger.debug("Evicted oldest entity %s to admit %s", evicted.id, entity.id)
            self._entities.append(entity)
        return evicted

    def remove(self, entity: Entity) -> bool:
        for index, existing in enumerate(self._entities):
            if existing is entity:
                del self._entities[index]
                self._release(entity)
                return True
        return False

    def clear(self) -> List[Entity]:
        removed = self._entities
        self._entities = []
        for entity in removed:
            self._release(entity)
        return removed
