from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import FrameMetrics


@dataclass(slots=True)
class Snapshot:
    frame: int
    metrics: FrameMetrics
    entities: List[Dict[str, Any]]
    bounds: "SnapshotBounds"
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotBounds:
    x: float
    y: float
    z: float
    floor: float


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    frame_rate: float
    seed: int
    config_version: str
    max_models: int
    animating: bool
