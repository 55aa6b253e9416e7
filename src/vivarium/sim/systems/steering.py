from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

from pygame.math import Vector3

from ..utils.math3d import _hue_distance

if TYPE_CHECKING:
    from ...config import BoundsConfig, FlockingConfig
    from ..core.entity import Entity
    from ..core.rng import DeterministicRng


def flocking(config: FlockingConfig, entity: Entity, others: Sequence[Entity], rng: DeterministicRng) -> tuple[Vector3, int]:
    """Cohesion toward same-coloured neighbours plus separation from crowding ones.

    Returns the steering acceleration and the number of pairs examined.
    """
    perception_sq = config.perception_radius * config.perception_radius
    separation_sq = config.separation_distance * config.separation_distance
    position = entity.position
    centroid = Vector3()
    affine = 0
    repulsion = Vector3()
    checks = 0

    for other in others:
        if other is entity:
            continue
        checks += 1
        offset = position - other.position
        dist_sq = offset.length_squared()
        if dist_sq > perception_sq:
            continue
        if _hue_distance(entity.hue, other.hue) < config.color_affinity_threshold:
            centroid += other.position
            affine += 1
        if dist_sq < separation_sq:
            if dist_sq < 1e-12:
                repulsion += rng.next_unit_sphere()
                continue
            # unit direction weighted by 1 / distance^2
            repulsion += offset / (dist_sq ** 1.5)

    steer = Vector3()
    if affine:
        centroid = centroid / affine
        steer += (centroid - position) * config.cohesion_force
    if repulsion.length_squared() > 0:
        steer += repulsion * config.separation_force
    return steer, checks


def containment(bounds: BoundsConfig, position: Vector3) -> Vector3:
    push = Vector3()
    force = bounds.containment_force
    if position.x > bounds.x:
        push.x -= force
    elif position.x < -bounds.x:
        push.x += force
    if position.y > bounds.y:
        push.y -= force
    elif position.y < bounds.floor:
        push.y += force * bounds.floor_force_multiplier
    if position.z > bounds.z:
        push.z -= force
    elif position.z < -bounds.z:
        push.z += force
    return push


def wander(config: FlockingConfig, rng: DeterministicRng) -> Vector3:
    if config.wander_strength <= 0:
        return Vector3()
    return rng.next_jitter(1.0) * config.wander_strength


def compute_acceleration(
    flock: FlockingConfig,
    bounds: BoundsConfig,
    entity: Entity,
    others: Sequence[Entity],
    rng: DeterministicRng,
) -> tuple[Vector3, int]:
    steer, checks = flocking(flock, entity, others, rng)
    steer += containment(bounds, entity.position)
    steer += wander(flock, rng)
    return steer, checks


def accumulate_forces(
    flock: FlockingConfig, bounds: BoundsConfig, entities: Sequence[Entity], rng: DeterministicRng
) -> int:
    """Reset and recompute every entity's acceleration from the current positions."""
    pair_checks = 0
    for entity in entities:
        acceleration, checks = compute_acceleration(flock, bounds, entity, entities, rng)
        entity.acceleration = acceleration
        pair_checks += checks
    return pair_checks
