import itertools
import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from pygame.math import Vector3  # noqa: E402

from vivarium.sim.core.descriptor import CreatureDescriptor  # noqa: E402
from vivarium.sim.core.entity import Entity, Material  # noqa: E402


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-config-tests",
        action="store_true",
        default=False,
        help="run tests that are intended only for configuration changes",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "config_change: marks tests that should only run when configuration files change",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-config-tests"):
        return

    skip_marker = pytest.mark.skip(
        reason="Run only when configuration is modified (use --run-config-tests)",
    )

    for item in items:
        if "config_change" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def make_entity():
    ids = itertools.count(1)

    def _make(
        position=(0.0, 3.0, 0.0),
        velocity=(0.0, 0.0, 0.0),
        hue: float = 0.0,
        scale: float = 1.0,
        lifespan: float | None = None,
        max_lifespan: float = 180.0,
        shape: str = "default",
    ) -> Entity:
        entity_id = next(ids)
        return Entity(
            id=entity_id,
            descriptor=CreatureDescriptor(model_path="/assets/creature.yaml", hue=hue, size=scale),
            meshes=[],
            material=Material(matcap="/assets/matcap_iridescent.png"),
            position=Vector3(position),
            velocity=Vector3(velocity),
            original_size=scale,
            scale=scale,
            hue=hue,
            dominant_shape=shape,
            phase=0.1 * entity_id,
            max_lifespan=max_lifespan,
            lifespan=max_lifespan if lifespan is None else lifespan,
        )

    return _make
