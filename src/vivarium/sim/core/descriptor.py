from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .errors import DescriptorError
from ..utils.math3d import _wrap_hue


@dataclass(frozen=True, slots=True)
class MorphBinding:
    dictionary: Mapping[str, int]
    influences: tuple[float, ...]


@dataclass(frozen=True, slots=True)
class CreatureDescriptor:
    """Configuration for one creature as sent by the control panel."""

    model_path: str
    hue: float
    size: float = 1.0
    rotation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    morph_targets: Mapping[str, MorphBinding] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CreatureDescriptor":
        if not isinstance(payload, Mapping):
            raise DescriptorError("descriptor payload must be an object")
        model_path = payload.get("modelPath")
        if not isinstance(model_path, str) or not model_path:
            raise DescriptorError("descriptor is missing modelPath")

        hue = _wrap_hue(_number(payload.get("color", 0.0), "color"))
        size = _number(payload.get("size", 1.0), "size")
        if size <= 0:
            raise DescriptorError(f"size must be positive, got {size}")

        rotation_raw = payload.get("rotation") or {}
        if not isinstance(rotation_raw, Mapping):
            raise DescriptorError("rotation must be an object with x, y, z")
        rotation = (
            _number(rotation_raw.get("x") or 0.0, "rotation.x"),
            _number(rotation_raw.get("y") or 0.0, "rotation.y"),
            _number(rotation_raw.get("z") or 0.0, "rotation.z"),
        )

        morphs_raw = payload.get("morphTargets") or {}
        if not isinstance(morphs_raw, Mapping):
            raise DescriptorError("morphTargets must be an object keyed by mesh name")
        morph_targets: dict[str, MorphBinding] = {}
        for mesh_name, binding in morphs_raw.items():
            if not isinstance(binding, Mapping):
                raise DescriptorError(f"morphTargets[{mesh_name!r}] must be an object")
            dictionary = binding.get("dictionary") or {}
            influences = binding.get("influences") or []
            if not isinstance(dictionary, Mapping) or not isinstance(influences, (list, tuple)):
                raise DescriptorError(f"morphTargets[{mesh_name!r}] needs a dictionary and an influences list")
            morph_targets[str(mesh_name)] = MorphBinding(
                dictionary=MappingProxyType(
                    {str(k): int(_number(v, f"{mesh_name}.dictionary")) for k, v in dictionary.items()}
                ),
                influences=tuple(_number(v, f"{mesh_name}.influences") for v in influences),
            )

        return cls(
            model_path=model_path,
            hue=hue,
            size=size,
            rotation=rotation,
            morph_targets=MappingProxyType(morph_targets),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "modelPath": self.model_path,
            "color": self.hue,
            "size": self.size,
            "rotation": {"x": self.rotation[0], "y": self.rotation[1], "z": self.rotation[2]},
            "morphTargets": {
                name: {"dictionary": dict(binding.dictionary), "influences": list(binding.influences)}
                for name, binding in self.morph_targets.items()
            },
        }


def _number(value: Any, name: str) -> float:
    # Form inputs arrive as strings ("120", "1.5"); booleans are never numbers here.
    if isinstance(value, bool):
        raise DescriptorError(f"{name} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise DescriptorError(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise DescriptorError(f"{name} must be finite, got {value!r}")
    return number
