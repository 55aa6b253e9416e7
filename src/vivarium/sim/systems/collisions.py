from __future__ import annotations

import math
from typing import Sequence, TYPE_CHECKING

from ..utils.math3d import UP

if TYPE_CHECKING:
    from ...config import CollisionConfig
    from ..core.entity import Entity


def collision_radius(config: CollisionConfig, entity: Entity) -> float:
    return entity.scale * config.radius_factor


def resolve_pair(config: CollisionConfig, first: Entity, second: Entity) -> bool:
    """Separate an overlapping pair and exchange their normal velocities.

    Returns True when the pair was overlapping.
    """
    reach = collision_radius(config, first) + collision_radius(config, second)
    offset = second.position - first.position
    dist_sq = offset.length_squared()
    if dist_sq >= reach * reach:
        return False

    distance = math.sqrt(dist_sq)
    normal = offset / distance if distance > 1e-9 else UP.copy()

    overlap = reach - distance
    first.position -= normal * (overlap * 0.5)
    second.position += normal * (overlap * 0.5)

    approach = (first.velocity - second.velocity).dot(normal)
    if approach >= 0:
        first_normal = normal * first.velocity.dot(normal)
        second_normal = normal * second.velocity.dot(normal)
        first.velocity = first.velocity - first_normal + second_normal
        second.velocity = second.velocity - second_normal + first_normal

    if config.feeding_resets_lifespan:
        first.lifespan = first.max_lifespan
        second.lifespan = second.max_lifespan
    return True


def resolve_collisions(config: CollisionConfig, entities: Sequence[Entity]) -> int:
    collisions = 0
    count = len(entities)
    for i in range(count):
        first = entities[i]
        for j in range(i + 1, count):
            if resolve_pair(config, first, entities[j]):
                collisions += 1
    return collisions
