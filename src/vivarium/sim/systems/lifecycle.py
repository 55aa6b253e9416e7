from __future__ import annotations

from typing import List, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.entity import Entity


def age_entity(entity: Entity, dt: float) -> bool:
    """Advance one entity's clock; returns True once it has expired."""
    entity.lifespan = max(0.0, entity.lifespan - dt)
    entity.scale = entity.original_size * entity.life_fraction
    return entity.lifespan <= 0.0


def age_entities(entities: Sequence[Entity], dt: float) -> List[Entity]:
    """Age every entity and return the expired ones; removal is left to the caller."""
    return [entity for entity in entities if age_entity(entity, dt)]
