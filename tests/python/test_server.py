import asyncio
import json

import yaml
from fastapi.testclient import TestClient

from vivarium.app.server import SimulationController, app
from vivarium.config import AppConfig
from vivarium.sim.core.assets import DEFAULT_CREATURE_SCENE


class FakeViewer:
    def __init__(self):
        self.sent = []

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    def types(self):
        return [message["type"] for message in self.sent]


class ClosedViewer:
    async def send_text(self, text):
        raise RuntimeError("connection closed")


def _controller(tmp_path):
    (tmp_path / "creature.yaml").write_text(yaml.safe_dump(DEFAULT_CREATURE_SCENE))
    config = AppConfig()
    config.simulation.assets.root = str(tmp_path)
    return SimulationController(config)


def _payload(hue=120.0):
    return {"modelPath": "/assets/creature.yaml", "color": hue, "size": 1.2}


def test_relay_reaches_every_viewer_but_the_sender(tmp_path):
    controller = _controller(tmp_path)
    sender, other = FakeViewer(), FakeViewer()
    controller.clients.update({sender, other})

    async def exercise():
        task = await controller.relay(sender, _payload())
        return await task

    entity = asyncio.run(exercise())

    assert entity is not None
    assert len(controller.world.population) == 1
    assert "new-cube" in other.types()
    assert "new-cube" not in sender.types()
    relayed = next(message for message in other.sent if message["type"] == "new-cube")
    assert relayed["payload"]["color"] == 120.0
    assert {"type": "notification", "level": "success", "message": "Creature 1 added"} in sender.sent


def test_cube_created_message_spawns_a_creature(tmp_path):
    controller = _controller(tmp_path)
    sender = FakeViewer()
    controller.clients.add(sender)

    async def exercise():
        await controller.handle_message(sender, json.dumps({"type": "cube-created", "payload": _payload()}))
        await asyncio.gather(*controller._admissions)

    asyncio.run(exercise())

    assert len(controller.world.population) == 1


def test_invalid_messages_are_ignored(tmp_path):
    controller = _controller(tmp_path)
    sender = FakeViewer()
    controller.clients.add(sender)

    async def exercise():
        await controller.handle_message(sender, "not json")
        await controller.handle_message(sender, json.dumps([1, 2, 3]))
        await controller.handle_message(sender, json.dumps({"type": "unknown"}))

    asyncio.run(exercise())

    assert sender.sent == []
    assert len(controller.world.population) == 0


def test_missing_model_is_reported_to_viewers(tmp_path):
    controller = _controller(tmp_path)
    viewer = FakeViewer()
    controller.clients.add(viewer)

    entity = asyncio.run(controller.admit({"modelPath": "/assets/missing.yaml", "color": 10}))

    assert entity is None
    assert {"type": "notification", "level": "error", "message": "Error loading model"} in viewer.sent


def test_tickle_message_targets_entity(tmp_path):
    controller = _controller(tmp_path)
    viewer = FakeViewer()

    async def exercise():
        entity = await controller.admit(_payload())
        await controller.handle_message(viewer, json.dumps({"type": "tickle", "id": entity.id}))
        return entity

    entity = asyncio.run(exercise())

    assert entity.is_tickled


def test_stale_viewers_are_dropped(tmp_path):
    controller = _controller(tmp_path)
    alive, closed = FakeViewer(), ClosedViewer()
    controller.clients.update({alive, closed})

    asyncio.run(controller.clear())

    assert controller.clients == {alive}
    assert "snapshot" in alive.types()


def test_snapshot_message_shape(tmp_path):
    controller = _controller(tmp_path)
    asyncio.run(controller.admit(_payload()))
    controller.world.step()

    message = controller._serialize_snapshot()

    assert message["type"] == "snapshot"
    payload = message["payload"]
    assert payload["frame"] == 1
    assert payload["metrics"]["population"] == 1
    assert payload["metadata"]["max_models"] == 20
    assert len(payload["entities"]) == 1
    json.dumps(message)


def test_status_endpoint():
    client = TestClient(app)

    response = client.get("/api/status")

    assert response.status_code == 200
    body = response.json()
    assert body["stats"]["max_models"] == 20
    assert "metrics" in body


def test_tickle_unknown_entity_returns_404():
    client = TestClient(app)

    response = client.post("/api/entities/123/tickle")

    assert response.status_code == 404


def test_speed_is_clamped():
    client = TestClient(app)

    response = client.post("/api/control/speed", json={"multiplier": 50})

    assert response.json() == {"multiplier": 5.0}


def test_speed_rejects_non_numeric_multiplier():
    client = TestClient(app)

    for bad in ["fast", None, [1]]:
        response = client.post("/api/control/speed", json={"multiplier": bad})
        assert response.status_code == 422
