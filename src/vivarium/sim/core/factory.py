from __future__ import annotations

import logging
import math
from typing import Iterable, List, Mapping, Protocol

from pygame.math import Vector3

from ...config import AssetConfig, LifecycleConfig
from .assets import AssetLoader
from .descriptor import CreatureDescriptor, MorphBinding
from .entity import DEFAULT_SHAPE, Entity, Material, MeshBinding

logger = logging.getLogger(__name__)

DOMINANT_SHAPE_THRESHOLD = 0.1


class Renderer(Protocol):
    def attach(self, entity: Entity) -> None:
        ...

    def detach(self, entity: Entity) -> None:
        ...

    def render(self, entities: Iterable[Entity]) -> None:
        ...


class NullRenderer:
    """Renderer stand-in that only records what it was asked to show."""

    def __init__(self) -> None:
        self.attached: List[int] = []
        self.detached: List[int] = []
        self.frames = 0

    def attach(self, entity: Entity) -> None:
        self.attached.append(entity.id)

    def detach(self, entity: Entity) -> None:
        self.detached.append(entity.id)

    def render(self, entities: Iterable[Entity]) -> None:
        self.frames += 1


def apply_morph_targets(meshes: List[MeshBinding], morph_targets: Mapping[str, MorphBinding]) -> int:
    """Copy descriptor influences onto meshes by name; returns how many values were applied.

    Descriptors may name meshes or slots the model no longer has; those are skipped.
    """
    by_name = {mesh.name: mesh for mesh in meshes}
    applied = 0
    for mesh_name, binding in morph_targets.items():
        mesh = by_name.get(mesh_name)
        if mesh is None or not mesh.morph_dictionary:
            logger.debug("Skipping morph targets for unknown mesh %r", mesh_name)
            continue
        influences = mesh.morph_influences
        for index, influence in enumerate(binding.influences):
            if index >= len(influences):
                logger.debug("Mesh %r has no morph slot %d", mesh_name, index)
                continue
            influences[index] = influence
            applied += 1
    return applied


def dominant_shape(meshes: List[MeshBinding]) -> str:
    if not meshes:
        return DEFAULT_SHAPE
    mesh = meshes[0]
    best_name = DEFAULT_SHAPE
    best_value = DOMINANT_SHAPE_THRESHOLD
    for name, index in mesh.morph_dictionary.items():
        if index >= len(mesh.morph_influences):
            continue
        value = mesh.morph_influences[index]
        if value > best_value:
            best_name = name
            best_value = value
    return best_name


def phase_from_id(entity_id: int) -> float:
    return (entity_id % 100_000) / 100_000.0 * 2.0 * math.pi


class EntityFactory:
    def __init__(
        self,
        loader: AssetLoader,
        renderer: Renderer,
        assets: AssetConfig | None = None,
        lifecycle: LifecycleConfig | None = None,
    ):
        self._loader = loader
        self._renderer = renderer
        self._assets = assets or AssetConfig()
        self._lifecycle = lifecycle or LifecycleConfig()
        self._base_material = Material(matcap=self._assets.matcap_texture)

    @property
    def loader(self) -> AssetLoader:
        return self._loader

    @property
    def renderer(self) -> Renderer:
        return self._renderer

    async def create(self, descriptor: CreatureDescriptor, entity_id: int, created_at: float = 0.0) -> Entity:
        """Build an entity for ``descriptor``; raises LoadError or AssetMalformedError."""
        base = await self._loader.load(descriptor.model_path)
        scene = base.clone()
        meshes = [
            MeshBinding(
                name=node.name,
                morph_dictionary=node.morph_dictionary,
                morph_influences=node.morph_influences,
                geometry=node.geometry,
            )
            for node in scene.meshes
        ]
        if descriptor.morph_targets:
            apply_morph_targets(meshes, descriptor.morph_targets)

        material = self._base_material.clone()
        material.set_hsl(descriptor.hue / 360.0, self._assets.saturation, self._assets.lightness)

        max_lifespan = self._lifecycle.max_lifespan
        return Entity(
            id=entity_id,
            descriptor=descriptor,
            meshes=meshes,
            material=material,
            position=Vector3(),
            velocity=Vector3(),
            original_size=descriptor.size,
            scale=descriptor.size,
            hue=descriptor.hue,
            dominant_shape=dominant_shape(meshes),
            phase=phase_from_id(entity_id),
            max_lifespan=max_lifespan,
            lifespan=max_lifespan,
            rotation=Vector3(descriptor.rotation),
            created_at=created_at,
        )

    def attach(self, entity: Entity) -> None:
        self._renderer.attach(entity)

    def release(self, entity: Entity) -> None:
        if entity.release():
            self._renderer.detach(entity)
