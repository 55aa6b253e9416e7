from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FrameMetrics:
    frame: int
    population: int
    admitted: int
    evicted: int
    expired: int
    collisions: int
    pair_checks: int
    average_speed: float
    average_lifespan: float
    elapsed_time: float
    frame_duration_ms: float = 0.0
