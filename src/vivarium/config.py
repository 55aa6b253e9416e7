from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

import yaml


@dataclass
class PopulationConfig:
    max_models: int = 20


@dataclass
class FlockingConfig:
    perception_radius: float = 5.0
    color_affinity_threshold: float = 45.0
    cohesion_force: float = 0.0005
    separation_distance: float = 1.5
    separation_force: float = 0.005
    wander_strength: float = 0.0002


@dataclass
class BoundsConfig:
    x: float = 10.0
    y: float = 6.0
    z: float = 10.0
    floor: float = 0.5
    containment_force: float = 0.002
    # Multiplier applied to the upward push when an entity sinks below the floor
    floor_force_multiplier: float = 2.0


@dataclass
class MotionConfig:
    min_speed: float = 0.2
    max_speed: float = 1.5


@dataclass
class CollisionConfig:
    radius_factor: float = 0.9
    feeding_resets_lifespan: bool = True


@dataclass
class LifecycleConfig:
    max_lifespan: float = 180.0
    tickle_duration: float = 1.0
    tickle_jitter: float = 0.05


def _default_shape_styles() -> Dict[str, str]:
    return {name: name for name in ("spiky", "round", "tall", "flat", "twisted", "winged")}


@dataclass
class RotationConfig:
    # Maps a dominant morph-target name to one of the named rotation styles.
    shape_styles: Dict[str, str] = field(default_factory=_default_shape_styles)
    base_spin: float = 0.3
    wobble: float = 0.12


@dataclass
class SpawnConfig:
    attempts: int = 10
    min_distance: float = 3.0
    spread: float = 16.0
    height: float = 2.0
    fallback_spread: float = 20.0
    fallback_height: float = 3.0
    initial_velocity: tuple[float, float, float] = (0.8, 0.3, 0.8)


@dataclass
class AssetConfig:
    root: str = "assets"
    load_timeout_seconds: float = 10.0
    cache_size: int = 8
    matcap_texture: str = "/assets/matcap_iridescent.png"
    saturation: float = 0.7
    lightness: float = 0.5


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0
    seed: int = 42
    config_version: str = "v1"
    population: PopulationConfig = field(default_factory=PopulationConfig)
    flocking: FlockingConfig = field(default_factory=FlockingConfig)
    bounds: BoundsConfig = field(default_factory=BoundsConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    collision: CollisionConfig = field(default_factory=CollisionConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    rotation: RotationConfig = field(default_factory=RotationConfig)
    spawn: SpawnConfig = field(default_factory=SpawnConfig)
    assets: AssetConfig = field(default_factory=AssetConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    broadcast_interval: int = 2
    notify_clients: bool = True


_SECTIONS = {
    "population": PopulationConfig,
    "flocking": FlockingConfig,
    "bounds": BoundsConfig,
    "motion": MotionConfig,
    "collision": CollisionConfig,
    "lifecycle": LifecycleConfig,
    "rotation": RotationConfig,
    "spawn": SpawnConfig,
    "assets": AssetConfig,
}


def load_config(raw: dict) -> SimulationConfig:
    sections = {name: cls(**(raw.get(name) or {})) for name, cls in _SECTIONS.items()}
    spawn = sections["spawn"]
    velocity = spawn.initial_velocity
    if isinstance(velocity, (tuple, list)) and len(velocity) == 3:
        spawn.initial_velocity = (float(velocity[0]), float(velocity[1]), float(velocity[2]))
    else:
        spawn.initial_velocity = SpawnConfig().initial_velocity
    sim_values = {k: v for k, v in raw.items() if k not in _SECTIONS}
    return SimulationConfig(**sections, **sim_values)


def load_app_config(path: Path) -> AppConfig:
    data = yaml.safe_load(Path(path).read_text()) or {}
    simulation = load_config(data.get("simulation") or {})
    app_values = {k: v for k, v in data.items() if k != "simulation"}
    return AppConfig(simulation=simulation, **app_values)
