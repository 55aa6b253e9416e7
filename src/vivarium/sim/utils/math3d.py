from __future__ import annotations

import math

from pygame.math import Vector3

UP = Vector3(0.0, 1.0, 0.0)


def _clamp_speed(velocity: Vector3, min_speed: float, max_speed: float) -> Vector3:
    """Return ``velocity`` rescaled so its length lies in ``[min_speed, max_speed]``."""
    speed_sq = velocity.length_squared()
    if speed_sq < 1e-12:
        return UP * min_speed
    speed = math.sqrt(speed_sq)
    if speed > max_speed:
        return velocity * (max_speed / speed)
    if speed < min_speed:
        return velocity * (min_speed / speed)
    return Vector3(velocity)


def _hue_distance(first: float, second: float) -> float:
    """Shortest angular distance between two hues on the 0-360 wheel."""
    delta = abs(first - second) % 360.0
    return 360.0 - delta if delta > 180.0 else delta


def _wrap_hue(value: float) -> float:
    return value % 360.0
