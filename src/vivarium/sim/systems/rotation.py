from __future__ import annotations

import math
from typing import Callable, Dict, TYPE_CHECKING

if TYPE_CHECKING:
    from ...config import RotationConfig
    from ..core.entity import Entity

RotationStyle = Callable[["Entity", float, float, "RotationConfig"], None]


def _default(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    entity.rotation.y += config.base_spin * dt
    entity.rotation.x += math.sin(elapsed + entity.phase) * config.wobble * dt
    entity.rotation.z += math.cos(elapsed + entity.phase) * config.wobble * dt


def _spiky(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    # nervous spin that surges and stalls
    entity.rotation.y += (4.0 + 2.0 * math.sin(3.0 * elapsed + entity.phase)) * config.base_spin * dt


def _round(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    entity.rotation.x += 2.0 * config.base_spin * dt
    entity.rotation.z = 0.2 * math.sin(elapsed + entity.phase)


def _tall(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    entity.rotation.y += 1.5 * config.base_spin * dt
    entity.rotation.x = 0.15 * math.sin(0.8 * elapsed + entity.phase)


def _flat(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    entity.rotation.x += 3.0 * config.base_spin * math.cos(0.5 * elapsed + entity.phase) * dt


def _twisted(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    entity.rotation.y += 5.0 * config.base_spin * math.sin(2.0 * elapsed + entity.phase) * dt
    entity.rotation.z += math.cos(elapsed + entity.phase) * config.wobble * 3.0 * dt


def _winged(entity: Entity, elapsed: float, dt: float, config: RotationConfig) -> None:
    entity.rotation.z = 0.35 * math.sin(2.5 * elapsed + entity.phase)
    entity.rotation.y += config.base_spin * dt


STYLES: Dict[str, RotationStyle] = {
    "default": _default,
    "spiky": _spiky,
    "round": _round,
    "tall": _tall,
    "flat": _flat,
    "twisted": _twisted,
    "winged": _winged,
}


def style_for(config: RotationConfig, shape: str) -> str:
    style = config.shape_styles.get(shape, "default")
    return style if style in STYLES else "default"


def apply_rotation(config: RotationConfig, entity: Entity, elapsed: float, dt: float) -> None:
    STYLES[style_for(config, entity.dominant_shape)](entity, elapsed, dt, config)
