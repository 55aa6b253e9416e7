#!/usr/bin/env python3
"""Generate a sample creature scene manifest and matcap texture for the relay server."""
from __future__ import annotations

import argparse
import struct
import sys
import zlib
from pathlib import Path

import yaml

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from vivarium.sim.core.assets import DEFAULT_CREATURE_SCENE  # noqa: E402


def build_matcap_png(size: int) -> bytes:
    """Radial grey-to-white gradient; enough for a matcap lookup."""
    center = (size - 1) / 2.0
    rows = []
    for y in range(size):
        row = bytearray()
        for x in range(size):
            dist = ((x - center) ** 2 + (y - center) ** 2) ** 0.5 / max(center, 1.0)
            shade = max(40, min(255, int(255 - dist * 180)))
            row.extend((shade, shade, min(255, shade + 20)))
        rows.append(b"\x00" + bytes(row))
    compressed = zlib.compress(b"".join(rows))

    def chunk(chunk_type: bytes, data: bytes) -> bytes:
        return (
            struct.pack(">I", len(data))
            + chunk_type
            + data
            + struct.pack(">I", zlib.crc32(chunk_type + data) & 0xFFFFFFFF)
        )

    ihdr = struct.pack(">IIBBBBB", size, size, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", compressed) + chunk(b"IEND", b"")


def write_asset(path: Path, data: bytes, overwrite: bool) -> None:
    if path.exists() and not overwrite:
        raise FileExistsError(f"{path} already exists. Use --overwrite to replace.")
    path.write_bytes(data)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate sample creature assets.")
    parser.add_argument("--output-dir", type=Path, default=Path("assets"), help="Directory to write assets into.")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite existing files.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    output_dir: Path = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    manifest = yaml.safe_dump(DEFAULT_CREATURE_SCENE, sort_keys=False).encode("utf-8")
    write_asset(output_dir / "creature.yaml", manifest, args.overwrite)
    write_asset(output_dir / "matcap_iridescent.png", build_matcap_png(16), args.overwrite)

    print(f"Generated sample assets in {output_dir}")


if __name__ == "__main__":
    main()
