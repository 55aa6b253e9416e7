from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import SimulationConfig
from ..logging_config import setup_logging
from ..sim.core.assets import DEFAULT_CREATURE_SCENE, AssetLoader, InMemoryAssetSource
from ..sim.core.factory import EntityFactory, NullRenderer
from ..sim.core.rng import DeterministicRng
from ..sim.core.world import SimulationLoop
from ..sim.types.metrics import FrameMetrics

logger = logging.getLogger(__name__)

SAMPLE_MODEL_PATH = "/assets/creature.yaml"
_SHAPES = ("spiky", "round", "tall", "flat", "twisted", "winged")

_HEADER = [
    "frame",
    "population",
    "admitted",
    "evicted",
    "expired",
    "collisions",
    "pair_checks",
    "avg_speed",
    "avg_lifespan",
    "frame_ms",
]


def _format_row(metrics: FrameMetrics, frame_ms: float) -> list[object]:
    return [
        metrics.frame,
        metrics.population,
        metrics.admitted,
        metrics.evicted,
        metrics.expired,
        metrics.collisions,
        metrics.pair_checks,
        f"{metrics.average_speed:.4f}",
        f"{metrics.average_lifespan:.4f}",
        f"{frame_ms:.3f}",
    ]


def random_descriptor(rng: DeterministicRng, model_path: str = SAMPLE_MODEL_PATH) -> Dict[str, Any]:
    """A control-panel style payload with one dominant morph target."""
    influences = [round(rng.next_range(0.0, 0.3), 3) for _ in _SHAPES]
    influences[rng.next_int(len(_SHAPES))] = round(rng.next_range(0.5, 1.0), 3)
    return {
        "modelPath": model_path,
        "color": round(rng.next_range(0.0, 360.0), 1),
        "size": round(rng.next_range(0.6, 1.4), 2),
        "rotation": {"x": 0.0, "y": rng.next_range(0.0, math.tau), "z": 0.0},
        "morphTargets": {
            "Body": {
                "dictionary": {name: index for index, name in enumerate(_SHAPES)},
                "influences": influences,
            }
        },
    }


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


class FrameClock:
    """Simulated wall clock; entity ids derive from it so identical seeds give identical runs."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def build_headless_loop(config: SimulationConfig, clock: FrameClock) -> SimulationLoop:
    loader = AssetLoader(
        InMemoryAssetSource({SAMPLE_MODEL_PATH: DEFAULT_CREATURE_SCENE}),
        timeout=config.assets.load_timeout_seconds,
        cache_size=config.assets.cache_size,
    )
    factory = EntityFactory(loader, NullRenderer(), config.assets, config.lifecycle)
    return SimulationLoop(config, factory=factory, clock=clock)


async def _run(
    config: SimulationConfig,
    steps: int,
    spawn_every: int,
    writer: Optional[Any],
    deterministic_log: bool,
) -> Dict[str, list[float]]:
    clock = FrameClock()
    loop = build_headless_loop(config, clock)
    descriptor_rng = DeterministicRng(config.seed)
    series: Dict[str, list[float]] = {"frame_ms": [], "population": [], "collisions": []}
    for frame in range(steps):
        if spawn_every > 0 and frame % spawn_every == 0:
            await loop.admit_descriptor(random_descriptor(descriptor_rng))
        clock.now = frame * config.time_step
        metrics = loop.step()
        frame_ms = 0.0 if deterministic_log else metrics.frame_duration_ms
        series["frame_ms"].append(frame_ms)
        series["population"].append(float(metrics.population))
        series["collisions"].append(float(metrics.collisions))
        if writer:
            writer.writerow(_format_row(metrics, frame_ms))
    logger.info("Headless run finished: %s", loop.stats())
    return series


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    spawn_every: int = 30,
    deterministic_log: bool = False,
    summary_path: Optional[Path] = None,
    config: Optional[SimulationConfig] = None,
) -> None:
    config = config or SimulationConfig()
    if seed is not None:
        config.seed = seed

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)
    try:
        series = asyncio.run(_run(config, steps, spawn_every, writer, deterministic_log))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        summary = {
            "steps": steps,
            "seed": config.seed,
            "spawn_every": spawn_every,
            "deterministic_log": deterministic_log,
            "frame_ms": _summary_stats(series["frame_ms"]),
            "population": _summary_stats(series["population"]),
            "collisions": _summary_stats(series["collisions"]),
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless shared-environment simulation")
    parser.add_argument("--steps", type=int, default=3600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--spawn-every", type=int, default=30, help="Frames between sample creature spawns (0 disables).")
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write frame metrics")
    parser.add_argument("--summary", type=Path, default=None, help="Optional JSON file to write summary stats for the run.")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (frame_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = SimulationConfig.from_yaml(args.config) if args.config else None
    run_headless(
        args.steps,
        args.seed,
        args.log,
        spawn_every=args.spawn_every,
        deterministic_log=args.deterministic_log,
        summary_path=args.summary,
        config=config,
    )


if __name__ == "__main__":
    main()
