from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...config import LifecycleConfig
    from ..core.entity import Entity
    from ..core.rng import DeterministicRng


def tickle(config: LifecycleConfig, entity: Entity) -> None:
    entity.is_tickled = True
    entity.tickle_time = config.tickle_duration


def update_tickle(config: LifecycleConfig, entity: Entity, dt: float, rng: DeterministicRng) -> bool:
    """Jitter a tickled entity in place; returns True if it was tickled this frame."""
    if not entity.is_tickled:
        return False
    entity.position += rng.next_jitter(config.tickle_jitter)
    entity.tickle_time -= dt
    if entity.tickle_time <= 0.0:
        entity.is_tickled = False
        entity.tickle_time = 0.0
    return True
