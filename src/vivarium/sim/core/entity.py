from __future__ import annotations

import colorsys
from dataclasses import dataclass, field
from typing import Dict, List

from pygame.math import Vector3

from .assets import Geometry
from .descriptor import CreatureDescriptor

DEFAULT_SHAPE = "default"


@dataclass(slots=True)
class Material:
    matcap: str
    color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    disposed: bool = False

    def clone(self) -> "Material":
        return Material(matcap=self.matcap, color=self.color)

    def set_hsl(self, hue: float, saturation: float, lightness: float) -> None:
        # colorsys orders the arguments hue, lightness, saturation
        self.color = colorsys.hls_to_rgb(hue % 1.0, lightness, saturation)

    def hex_color(self) -> str:
        r, g, b = (max(0, min(255, round(c * 255))) for c in self.color)
        return f"#{r:02x}{g:02x}{b:02x}"

    def dispose(self) -> None:
        self.disposed = True


@dataclass(slots=True)
class MeshBinding:
    name: str
    morph_dictionary: Dict[str, int]
    morph_influences: List[float]
    geometry: Geometry


@dataclass(slots=True)
class Entity:
    id: int
    descriptor: CreatureDescriptor
    meshes: List[MeshBinding]
    material: Material
    position: Vector3
    velocity: Vector3
    original_size: float
    scale: float
    hue: float
    dominant_shape: str = DEFAULT_SHAPE
    phase: float = 0.0
    max_lifespan: float = 180.0
    lifespan: float = 180.0
    acceleration: Vector3 = field(default_factory=Vector3)
    rotation: Vector3 = field(default_factory=Vector3)
    is_tickled: bool = False
    tickle_time: float = 0.0
    created_at: float = 0.0
    released: bool = False

    @property
    def life_fraction(self) -> float:
        if self.max_lifespan <= 0:
            return 0.0
        return max(0.0, self.lifespan / self.max_lifespan)

    def release(self) -> bool:
        """Dispose geometry and material; returns False when already released."""
        if self.released:
            return False
        for mesh in self.meshes:
            mesh.geometry.dispose()
        self.material.dispose()
        self.released = True
        return True
