from __future__ import annotations

import asyncio
import itertools

import pytest
from pygame.math import Vector3

from vivarium.config import FlockingConfig, PopulationConfig, SimulationConfig
from vivarium.sim.core.assets import DEFAULT_CREATURE_SCENE, AssetLoader, InMemoryAssetSource
from vivarium.sim.core.factory import EntityFactory
from vivarium.sim.core.world import SimulationLoop

PATH = "/assets/creature.yaml"


class RecordingRenderer:
    def __init__(self):
        self.events = []
        self.frames = 0

    def attach(self, entity):
        self.events.append(("attach", entity.id))

    def detach(self, entity):
        self.events.append(("detach", entity.id))

    def render(self, entities):
        self.frames += 1


def _loop(config=None, delay=0.0, documents=None):
    config = config or SimulationConfig(flocking=FlockingConfig(wander_strength=0.0))
    loader = AssetLoader(InMemoryAssetSource(documents or {PATH: DEFAULT_CREATURE_SCENE}, delay=delay))
    factory = EntityFactory(loader, RecordingRenderer(), config.assets, config.lifecycle)
    notifications = []
    ticks = itertools.count(1)
    loop = SimulationLoop(
        config,
        factory=factory,
        notifier=lambda message, level: notifications.append((message, level)),
        clock=lambda: float(next(ticks)),
    )
    return loop, notifications


def _payload(hue=10.0, path=PATH):
    return {"modelPath": path, "color": hue, "size": 1.0}


def test_twenty_five_spawns_keep_the_twenty_newest():
    loop, _ = _loop()

    async def exercise():
        admitted = []
        for index in range(25):
            entity = await loop.admit_descriptor(_payload(hue=index * 10))
            admitted.append(entity)
            assert len(loop.population) <= loop.population.max_models
        return admitted

    admitted = asyncio.run(exercise())

    assert [e.id for e in loop.entities] == [e.id for e in admitted[5:]]
    events = loop.factory.renderer.events
    assert [entity_id for kind, entity_id in events if kind == "detach"] == [e.id for e in admitted[:5]]
    # the oldest is released before the newcomer is attached
    assert events.index(("detach", admitted[0].id)) < events.index(("attach", admitted[20].id))
    assert all(e.released for e in admitted[:5])
    assert loop.factory.loader.fetch_count == 1


def test_entity_ids_are_unique_and_increasing():
    loop, _ = _loop()

    async def exercise():
        return [await loop.admit_descriptor(_payload()) for _ in range(5)]

    ids = [e.id for e in asyncio.run(exercise())]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


def test_spawned_entities_are_placed_inside_the_arena():
    loop, _ = _loop()

    async def exercise():
        return [await loop.admit_descriptor(_payload()) for _ in range(4)]

    for entity in asyncio.run(exercise()):
        assert abs(entity.position.x) <= 10.0
        assert 0.0 <= entity.position.y <= 3.0
        assert abs(entity.position.z) <= 10.0


def test_load_errors_are_reported_and_the_loop_keeps_going():
    loop, notifications = _loop()

    async def exercise():
        missing = await loop.admit_descriptor(_payload(path="/assets/missing.yaml"))
        invalid = await loop.admit_descriptor({"color": 10})
        ok = await loop.admit_descriptor(_payload())
        return missing, invalid, ok

    missing, invalid, ok = asyncio.run(exercise())

    assert missing is None and invalid is None
    assert ok is not None
    assert ("Error loading model", "error") in notifications
    assert ("Invalid creature description", "error") in notifications
    assert len(loop.population) == 1
    loop.step(0.1)
    assert loop.frame == 1


def test_late_load_after_clear_is_discarded():
    loop, _ = _loop(delay=0.05)

    async def exercise():
        task = asyncio.create_task(loop.admit_descriptor(_payload()))
        await asyncio.sleep(0)
        loop.clear()
        return await task

    assert asyncio.run(exercise()) is None
    assert len(loop.population) == 0
    assert loop.factory.renderer.events == []


def test_speed_is_clamped_after_integration(make_entity):
    loop, _ = _loop()
    slow = make_entity(position=(-6.0, 3.0, 0.0), velocity=(0.05, 0.0, 0.0))
    still = make_entity(position=(0.0, 3.0, 0.0), velocity=(0.0, 0.0, 0.0))
    fast = make_entity(position=(6.0, 3.0, 0.0), velocity=(0.0, 0.0, 9.0))
    for entity in (slow, still, fast):
        loop.admit(entity, place=False)

    for _ in range(3):
        loop.step(1.0 / 60.0)
        for entity in loop.entities:
            assert 0.2 - 1e-9 <= entity.velocity.length() <= 1.5 + 1e-9


def test_similar_hues_drift_together_and_distant_hues_do_not(make_entity):
    def run(hue_b):
        loop, _ = _loop()
        a = make_entity(position=(-1.5, 3.0, -5.0), velocity=(0.0, 0.0, 0.5), hue=10.0)
        b = make_entity(position=(1.5, 3.0, -5.0), velocity=(0.0, 0.0, 0.5), hue=hue_b)
        loop.admit(a, place=False)
        loop.admit(b, place=False)
        for _ in range(60):
            loop.step(1.0 / 60.0)
        return a.position.distance_to(b.position)

    assert run(20.0) < 3.0 - 1e-3
    assert run(200.0) == pytest.approx(3.0)


def test_entity_with_almost_no_life_is_removed_after_one_frame(make_entity):
    loop, _ = _loop()
    entity = make_entity(lifespan=0.001)
    loop.admit(entity, place=False)

    metrics = loop.step(0.1)

    assert len(loop.population) == 0
    assert metrics.expired == 1
    assert entity.released


def test_expired_entity_does_not_feed_its_neighbour(make_entity):
    loop, _ = _loop()
    dying = make_entity(position=(0.0, 3.0, 0.0), lifespan=0.001)
    neighbour = make_entity(position=(0.5, 3.0, 0.0), lifespan=50.0)
    loop.admit(dying, place=False)
    loop.admit(neighbour, place=False)

    metrics = loop.step(0.1)

    assert metrics.collisions == 0
    assert loop.entities == (neighbour,)
    assert neighbour.lifespan == pytest.approx(49.9)


def test_lifespan_only_decreases_without_contact(make_entity):
    loop, _ = _loop()
    entity = make_entity(velocity=(0.0, 0.0, 0.5))
    loop.admit(entity, place=False)

    previous = entity.lifespan
    for _ in range(20):
        loop.step(0.1)
        assert entity.lifespan <= previous
        assert 0.0 <= entity.lifespan <= entity.max_lifespan
        previous = entity.lifespan


def test_collision_during_step_resets_lifespan(make_entity):
    loop, _ = _loop()
    a = make_entity(position=(0.0, 3.0, 0.0), velocity=(0.5, 0.0, 0.0), lifespan=179.0)
    b = make_entity(position=(1.0, 3.0, 0.0), velocity=(-0.5, 0.0, 0.0), lifespan=179.0)
    loop.admit(a, place=False)
    loop.admit(b, place=False)

    metrics = loop.step(0.1)

    assert metrics.collisions == 1
    assert a.lifespan == pytest.approx(a.max_lifespan)
    assert b.lifespan == pytest.approx(b.max_lifespan)


def test_tickled_entity_jitters_instead_of_moving(make_entity):
    loop, _ = _loop()
    entity = make_entity(position=(0.0, 3.0, 0.0), velocity=(0.0, 0.0, 1.0))
    loop.admit(entity, place=False)

    assert loop.tickle(entity.id)
    assert not loop.tickle(-1)
    loop.step(0.5)

    assert entity.is_tickled
    assert abs(entity.position.z) <= loop.config.lifecycle.tickle_jitter
    loop.step(0.5)
    assert not entity.is_tickled
    loop.step(0.5)
    assert entity.position.z > 0.3


def test_paused_loop_does_not_advance(make_entity):
    loop, notifications = _loop()
    entity = make_entity(velocity=(0.0, 0.0, 1.0))
    loop.admit(entity, place=False)

    assert loop.toggle_animation() is False
    before = Vector3(entity.position)
    loop.step(0.5)

    assert loop.frame == 0
    assert entity.position == before
    assert ("Animation paused", "info") in notifications
    loop.resume()
    loop.step(0.5)
    assert loop.frame == 1


def test_clear_releases_everything(make_entity):
    loop, notifications = _loop(SimulationConfig(population=PopulationConfig(max_models=3)))
    entities = [make_entity() for _ in range(3)]
    for entity in entities:
        loop.admit(entity, place=False)

    assert loop.clear() == 3
    assert len(loop.population) == 0
    assert all(entity.released for entity in entities)
    assert ("All creatures removed", "info") in notifications


def test_snapshot_and_stats(make_entity):
    loop, _ = _loop()
    entity = make_entity(position=(1.0, 2.0, 3.0), velocity=(0.0, 0.0, 0.5), hue=30.0, shape="round")
    loop.admit(entity, place=False)
    loop.step(0.1)

    snapshot = loop.snapshot()

    assert snapshot.frame == 1
    assert snapshot.metrics.population == 1
    assert snapshot.metadata.max_models == 20
    assert snapshot.metadata.frame_rate == pytest.approx(60.0)
    assert snapshot.bounds.floor == pytest.approx(0.5)
    payload = snapshot.entities[0]
    for key in ["id", "x", "y", "z", "vx", "vy", "vz", "scale", "hue", "color", "dominant_shape", "lifespan"]:
        assert key in payload
    assert payload["dominant_shape"] == "round"
    assert payload["z"] == pytest.approx(3.05)

    stats = loop.stats()
    assert stats["models_count"] == 1
    assert stats["is_animating"] is True
    assert stats["frame"] == 1
