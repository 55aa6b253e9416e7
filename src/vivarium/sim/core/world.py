from __future__ import annotations

import logging
import time
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Dict, Mapping, Optional

from pygame.math import Vector3

from ...config import SimulationConfig
from .assets import AssetLoader, FileAssetSource
from .descriptor import CreatureDescriptor
from .entity import Entity
from .errors import AssetMalformedError, DescriptorError, LoadError
from .factory import EntityFactory, NullRenderer
from .population import PopulationStore
from .rng import DeterministicRng
from ..systems import collisions, interaction, lifecycle, rotation, steering
from ..types.metrics import FrameMetrics
from ..types.snapshot import Snapshot, SnapshotBounds, SnapshotMetadata
from ..utils.math3d import _clamp_speed

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]

_SPAWN_RNG_SALT = 0x5EED5A1751A7E000
_LOG_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _derive_stream_seed(seed: int, salt: int) -> int:
    return (int(seed) ^ int(salt)) & 0xFFFFFFFFFFFFFFFF


def log_notifier(message: str, level: str = "info") -> None:
    logger.log(_LOG_LEVELS.get(level, logging.INFO), "%s", message)


class SimulationLoop:
    """Owns the live population and advances it one frame per ``step`` call.

    Admission is asynchronous (asset loads are awaited) while ``step`` is
    synchronous, so on a single event loop a frame never interleaves with an
    admission.
    """

    def __init__(
        self,
        config: SimulationConfig,
        factory: Optional[EntityFactory] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._spawn_rng = DeterministicRng(_derive_stream_seed(config.seed, _SPAWN_RNG_SALT))
        if factory is None:
            assets = config.assets
            loader = AssetLoader(
                FileAssetSource(Path(assets.root)),
                timeout=assets.load_timeout_seconds,
                cache_size=assets.cache_size,
            )
            factory = EntityFactory(loader, NullRenderer(), assets, config.lifecycle)
        self._factory = factory
        self._store = PopulationStore(config.population.max_models, factory.release)
        self._notify = notifier or log_notifier
        self._clock = clock
        self._frame = 0
        self._elapsed = 0.0
        self._animating = True
        self._epoch = 0
        self._last_id = 0
        self._admitted_since_frame = 0
        self._evicted_since_frame = 0
        self._metrics: FrameMetrics | None = None

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def factory(self) -> EntityFactory:
        return self._factory

    @property
    def population(self) -> PopulationStore:
        return self._store

    @property
    def entities(self) -> tuple[Entity, ...]:
        return self._store.entities

    @property
    def frame(self) -> int:
        return self._frame

    @property
    def elapsed_time(self) -> float:
        return self._elapsed

    @property
    def is_animating(self) -> bool:
        return self._animating

    @property
    def metrics(self) -> FrameMetrics | None:
        return self._metrics

    async def admit_descriptor(self, descriptor: CreatureDescriptor | Mapping[str, Any]) -> Optional[Entity]:
        """Build and admit a creature; failures are reported, never raised."""
        try:
            if not isinstance(descriptor, CreatureDescriptor):
                descriptor = CreatureDescriptor.from_payload(descriptor)
        except DescriptorError as exc:
            logger.warning("Rejected creature payload: %s", exc)
            self._notify("Invalid creature description", "error")
            return None

        epoch = self._epoch
        entity_id = self._next_entity_id()
        try:
            entity = await self._factory.create(descriptor, entity_id, created_at=self._clock())
        except (LoadError, AssetMalformedError) as exc:
            logger.warning("Could not build creature from %s: %s", descriptor.model_path, exc)
            self._notify("Error loading model", "error")
            return None

        if epoch != self._epoch:
            # The population was cleared while the asset was loading.
            entity.release()
            logger.info("Discarded creature %s that finished loading after a clear", entity.id)
            return None
        return self.admit(entity)

    def admit(self, entity: Entity, place: bool = True) -> Entity:
        if place:
            entity.position = self._find_spawn_position()
            spread = self._config.spawn.initial_velocity
            entity.velocity = Vector3(
                self._spawn_rng.next_range(-0.5, 0.5) * spread[0],
                self._spawn_rng.next_range(-0.5, 0.5) * spread[1],
                self._spawn_rng.next_range(-0.5, 0.5) * spread[2],
            )
        evicted = self._store.admit(entity)
        if evicted is not None:
            self._evicted_since_frame += 1
            logger.info("Oldest creature %s evicted", evicted.id)
        self._factory.attach(entity)
        self._admitted_since_frame += 1
        self._notify(f"Creature {len(self._store)} added", "success")
        return entity

    def tickle(self, entity_id: int) -> bool:
        entity = self._store.get(entity_id)
        if entity is None:
            return False
        interaction.tickle(self._config.lifecycle, entity)
        return True

    def clear(self) -> int:
        self._epoch += 1
        removed = self._store.clear()
        self._evicted_since_frame += len(removed)
        self._notify("All creatures removed", "info")
        return len(removed)

    def pause(self) -> None:
        self._animating = False

    def resume(self) -> None:
        self._animating = True

    def toggle_animation(self) -> bool:
        self._animating = not self._animating
        self._notify("Animation resumed" if self._animating else "Animation paused", "info")
        return self._animating

    def step(self, delta_time: Optional[float] = None) -> FrameMetrics:
        if not self._animating:
            return self._metrics if self._metrics is not None else self._collect_metrics(0, 0, 0, 0.0)

        start = perf_counter()
        config = self._config
        dt = config.time_step if delta_time is None else delta_time
        motion = config.motion
        entities = self._store.entities

        pair_checks = steering.accumulate_forces(config.flocking, config.bounds, entities, self._rng)

        for entity in entities:
            velocity = entity.velocity + entity.acceleration
            if velocity.length_squared() < 1e-12:
                velocity = self._rng.next_unit_sphere()
            entity.velocity = _clamp_speed(velocity, motion.min_speed, motion.max_speed)
            if not interaction.update_tickle(config.lifecycle, entity, dt, self._rng):
                entity.position += entity.velocity * dt

        self._elapsed += dt
        for entity in entities:
            rotation.apply_rotation(config.rotation, entity, self._elapsed, dt)

        expired = lifecycle.age_entities(entities, dt)
        if expired:
            expired_ids = {entity.id for entity in expired}
            survivors = [entity for entity in entities if entity.id not in expired_ids]
        else:
            survivors = list(entities)
        collision_count = collisions.resolve_collisions(config.collision, survivors)

        for entity in expired:
            self._store.remove(entity)
        self._factory.renderer.render(self._store.entities)

        self._frame += 1
        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = self._collect_metrics(len(expired), collision_count, pair_checks, elapsed_ms)
        self._admitted_since_frame = 0
        self._evicted_since_frame = 0
        self._metrics = metrics
        return metrics

    def snapshot(self) -> Snapshot:
        metrics = self._metrics if self._metrics is not None else self._collect_metrics(0, 0, 0, 0.0)
        bounds = self._config.bounds
        time_step = self._config.time_step
        return Snapshot(
            frame=self._frame,
            metrics=metrics,
            entities=[self._entity_snapshot(entity) for entity in self._store.entities],
            bounds=SnapshotBounds(x=bounds.x, y=bounds.y, z=bounds.z, floor=bounds.floor),
            metadata=SnapshotMetadata(
                sim_dt=time_step,
                frame_rate=0.0 if time_step <= 0 else 1.0 / time_step,
                seed=self._config.seed,
                config_version=self._config.config_version,
                max_models=self._store.max_models,
                animating=self._animating,
            ),
        )

    def stats(self) -> Dict[str, Any]:
        loader = self._factory.loader
        return {
            "models_count": len(self._store),
            "max_models": self._store.max_models,
            "cache_size": loader.cache_size,
            "asset_fetches": loader.fetch_count,
            "is_animating": self._animating,
            "frame": self._frame,
        }

    def _next_entity_id(self) -> int:
        candidate = int(self._clock() * 1000) * 1000 + self._spawn_rng.next_int(1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return candidate

    def _find_spawn_position(self) -> Vector3:
        spawn = self._config.spawn
        rng = self._spawn_rng
        min_distance_sq = spawn.min_distance * spawn.min_distance
        for _ in range(spawn.attempts):
            candidate = Vector3(
                rng.next_range(-0.5, 0.5) * spawn.spread,
                rng.next_float() * spawn.height,
                rng.next_range(-0.5, 0.5) * spawn.spread,
            )
            if all(
                (entity.position - candidate).length_squared() >= min_distance_sq for entity in self._store
            ):
                return candidate
        return Vector3(
            rng.next_range(-0.5, 0.5) * spawn.fallback_spread,
            rng.next_float() * spawn.fallback_height,
            rng.next_range(-0.5, 0.5) * spawn.fallback_spread,
        )

    def _collect_metrics(self, expired: int, collision_count: int, pair_checks: int, elapsed_ms: float) -> FrameMetrics:
        entities = self._store.entities
        population = len(entities)
        if population:
            average_speed = sum(entity.velocity.length() for entity in entities) / population
            average_lifespan = sum(entity.lifespan for entity in entities) / population
        else:
            average_speed = 0.0
            average_lifespan = 0.0
        return FrameMetrics(
            frame=self._frame,
            population=population,
            admitted=self._admitted_since_frame,
            evicted=self._evicted_since_frame,
            expired=expired,
            collisions=collision_count,
            pair_checks=pair_checks,
            average_speed=average_speed,
            average_lifespan=average_lifespan,
            elapsed_time=self._elapsed,
            frame_duration_ms=elapsed_ms,
        )

    @staticmethod
    def _entity_snapshot(entity: Entity) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "x": entity.position.x,
            "y": entity.position.y,
            "z": entity.position.z,
            "vx": entity.velocity.x,
            "vy": entity.velocity.y,
            "vz": entity.velocity.z,
            "rx": entity.rotation.x,
            "ry": entity.rotation.y,
            "rz": entity.rotation.z,
            "scale": entity.scale,
            "hue": entity.hue,
            "color": entity.material.hex_color(),
            "model_path": entity.descriptor.model_path,
            "dominant_shape": entity.dominant_shape,
            "lifespan": entity.lifespan,
            "life_fraction": entity.life_fraction,
            "tickled": entity.is_tickled,
            "morphs": {mesh.name: list(mesh.morph_influences) for mesh in entity.meshes if mesh.morph_dictionary},
        }
