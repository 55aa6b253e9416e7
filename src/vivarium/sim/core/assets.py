from __future__ import annotations

import asyncio
import copy
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol

import yaml

from .errors import AssetMalformedError, LoadError

logger = logging.getLogger(__name__)

MAX_MORPH_SLOTS = 256


@dataclass(slots=True)
class Geometry:
    vertex_count: int = 0
    disposed: bool = False

    def dispose(self) -> None:
        self.disposed = True


@dataclass(slots=True)
class MeshNode:
    name: str
    morph_dictionary: Dict[str, int] = field(default_factory=dict)
    morph_influences: List[float] = field(default_factory=list)
    geometry: Geometry = field(default_factory=Geometry)

    def clone(self) -> "MeshNode":
        return MeshNode(
            name=self.name,
            morph_dictionary=dict(self.morph_dictionary),
            morph_influences=list(self.morph_influences),
            geometry=Geometry(vertex_count=self.geometry.vertex_count),
        )


@dataclass(slots=True)
class SceneAsset:
    path: str
    meshes: List[MeshNode]

    def clone(self) -> "SceneAsset":
        return SceneAsset(path=self.path, meshes=[mesh.clone() for mesh in self.meshes])


# Built-in creature used by the headless runner and the sample-asset script.
DEFAULT_CREATURE_SCENE: Dict[str, Any] = {
    "scene": {
        "meshes": [
            {
                "name": "Body",
                "vertices": 2048,
                "morph_targets": {
                    "spiky": 0,
                    "round": 1,
                    "tall": 2,
                    "flat": 3,
                    "twisted": 4,
                    "winged": 5,
                },
            },
            {"name": "Eyes", "vertices": 256},
        ]
    }
}


class AssetSource(Protocol):
    async def fetch(self, path: str) -> Any:
        ...


class FileAssetSource:
    """Reads YAML scene manifests below ``root``; ``/assets/x.yaml`` maps to ``root/x.yaml``."""

    def __init__(self, root: Path, url_prefix: str = "/assets/"):
        self._root = Path(root)
        self._url_prefix = url_prefix

    def resolve(self, path: str) -> Path:
        relative = path[len(self._url_prefix):] if path.startswith(self._url_prefix) else path.lstrip("/")
        resolved = (self._root / relative).resolve()
        if self._root.resolve() not in resolved.parents:
            raise LoadError(path, "path escapes the asset root")
        return resolved

    async def fetch(self, path: str) -> Any:
        resolved = self.resolve(path)
        try:
            text = await asyncio.to_thread(resolved.read_text, encoding="utf-8")
        except OSError as exc:
            raise LoadError(path, str(exc)) from exc
        except UnicodeDecodeError as exc:
            raise AssetMalformedError(path, f"manifest is not UTF-8: {exc}") from exc
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise AssetMalformedError(path, f"unparseable manifest: {exc}") from exc


class InMemoryAssetSource:
    def __init__(self, documents: Mapping[str, Any], delay: float = 0.0):
        self._documents = dict(documents)
        self._delay = delay

    async def fetch(self, path: str) -> Any:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        if path not in self._documents:
            raise LoadError(path, "not found")
        return copy.deepcopy(self._documents[path])


def parse_scene(path: str, document: Any) -> SceneAsset:
    if not isinstance(document, Mapping) or not isinstance(document.get("scene"), Mapping):
        raise AssetMalformedError(path, "missing 'scene' node")
    meshes_raw = document["scene"].get("meshes")
    if not isinstance(meshes_raw, list) or not meshes_raw:
        raise AssetMalformedError(path, "scene has no meshes")
    meshes: List[MeshNode] = []
    for index, raw in enumerate(meshes_raw):
        if not isinstance(raw, Mapping) or not isinstance(raw.get("name"), str):
            raise AssetMalformedError(path, f"mesh #{index} has no name")
        targets = raw.get("morph_targets") or {}
        if not isinstance(targets, Mapping):
            raise AssetMalformedError(path, f"mesh {raw['name']!r} has malformed morph_targets")
        try:
            dictionary = {str(name): int(slot) for name, slot in targets.items()}
            influences = [float(v) for v in raw.get("influences") or []]
            vertex_count = int(raw.get("vertices", 0))
        except (TypeError, ValueError) as exc:
            raise AssetMalformedError(path, f"mesh {raw['name']!r}: {exc}") from exc
        for name, slot in dictionary.items():
            if not 0 <= slot < MAX_MORPH_SLOTS:
                raise AssetMalformedError(path, f"mesh {raw['name']!r}: morph slot {name!r} out of range ({slot})")
        slot_count = max(dictionary.values(), default=-1) + 1
        influences.extend([0.0] * (slot_count - len(influences)))
        meshes.append(
            MeshNode(
                name=raw["name"],
                morph_dictionary=dictionary,
                morph_influences=influences,
                geometry=Geometry(vertex_count=vertex_count),
            )
        )
    return SceneAsset(path=path, meshes=meshes)


class AssetLoader:
    """Fetches scene assets with a timeout and keeps an LRU cache of parsed base assets."""

    def __init__(self, source: AssetSource, timeout: float = 10.0, cache_size: int = 8):
        self._source = source
        self._timeout = timeout
        self._cache_size = max(1, cache_size)
        self._cache: OrderedDict[str, SceneAsset] = OrderedDict()
        self.fetch_count = 0

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cached_paths(self) -> List[str]:
        return list(self._cache)

    async def load(self, path: str) -> SceneAsset:
        cached = self._cache.get(path)
        if cached is not None:
            self._cache.move_to_end(path)
            return cached

        self.fetch_count += 1
        try:
            document = await asyncio.wait_for(self._source.fetch(path), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise LoadError(path, f"timed out after {self._timeout:g}s") from exc
        asset = parse_scene(path, document)

        self._cache[path] = asset
        self._cache.move_to_end(path)
        while len(self._cache) > self._cache_size:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("Asset cache evicted %s", evicted)
        return asset
