"""Reference shape library for constellation matching.

This module holds the fixed catalog of reference shapes a user's stars are
compared against. Each shape is a small ordered list of points in a unit-square
frame (y increasing downward, like screen pixels), authored from the main
vertices of the shape's SVG outline.

The built-in table is constructed once at import and never mutated. A JSON copy
of the same data can be loaded with load_reference_shapes(); if no file is
available the loader falls back to the built-in library.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple, Optional

DEFAULT_SHAPES_PATH = (
    Path(__file__).parent.parent.parent / "data" / "reference_shapes.json"
)


class Point(NamedTuple):
    """2D point, normalized to the unit square with y pointing down."""

    x: float
    y: float


@dataclass(frozen=True)
class ReferenceShape:
    """Named point-set template a user's stars are compared against.

    Attributes:
        id: Stable identifier, also the stem of the SVG asset
        name: Human-readable label
        points: Ordered points in the unit square. The order follows the
            outline but matching does not depend on it.
        asset_path: Opaque path to the display asset, passed through untouched
    """

    id: str
    name: str
    points: tuple[Point, ...]
    asset_path: str

    def __post_init__(self):
        if not self.points:
            raise ValueError(f"Reference shape '{self.id}' has no points")
        object.__setattr__(
            self, "points", tuple(Point(float(x), float(y)) for x, y in self.points)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "points": [[p.x, p.y] for p in self.points],
            "asset_path": self.asset_path,
        }


def default_asset_path(shape_id: str) -> str:
    """Return the SVG asset path for a shape id."""
    return f"/constellations/{shape_id}.svg"


def _shape(
    shape_id: str,
    name: str,
    points: list[tuple[float, float]],
) -> ReferenceShape:
    return ReferenceShape(
        id=shape_id,
        name=name,
        points=tuple(Point(x, y) for x, y in points),
        asset_path=default_asset_path(shape_id),
    )


# Built-in shapes, seven points each.
# Coordinates are normalized from the SVG viewBox (300x400, ei: 72x96).
REFERENCE_SHAPES: tuple[ReferenceShape, ...] = (
    _shape(
        "kurage",
        "くらげ座",
        [
            (0.55, 0.08),  # top of the bell
            (0.28, 0.15),
            (0.78, 0.18),
            (0.50, 0.45),  # tentacle fork
            (0.12, 0.85),
            (0.31, 0.98),
            (0.71, 0.88),
        ],
    ),
    _shape(
        "iruka",
        "いるか座",
        [
            (0.12, 0.09),  # head
            (0.28, 0.16),
            (0.51, 0.42),
            (0.91, 0.31),  # dorsal fin
            (0.67, 0.79),
            (0.83, 0.93),
            (0.57, 0.94),
        ],
    ),
    _shape(
        "sasori",
        "さそり座",
        [
            (0.37, 0.20),  # right claw
            (0.15, 0.40),
            (0.52, 0.39),
            (0.24, 0.50),
            (0.37, 0.74),
            (0.90, 0.46),
            (0.70, 0.99),  # tail tip
        ],
    ),
    _shape(
        "pizza",
        "ピ座",
        [
            (0.20, 0.90),  # slice tip
            (0.30, 0.48),
            (0.55, 0.42),
            (0.80, 0.50),
            (0.35, 0.60),  # toppings
            (0.50, 0.55),
            (0.65, 0.65),
        ],
    ),
    _shape(
        "sword",
        "座・ソード",
        [
            (0.25, 0.10),  # blade tip
            (0.15, 0.35),
            (0.35, 0.40),
            (0.10, 0.60),  # guard
            (0.45, 0.65),
            (0.25, 0.75),
            (0.25, 0.90),  # pommel
        ],
    ),
    _shape(
        "ei",
        "えい座",
        [
            (0.55, 0.22),
            (0.08, 0.38),  # left wing tip
            (0.92, 0.55),  # right wing tip
            (0.50, 0.55),
            (0.37, 0.65),
            (0.20, 0.80),
            (0.05, 0.95),  # tail tip
        ],
    ),
    _shape(
        "gyoza",
        "ぎょう座",
        [
            (0.05, 0.72),
            (0.25, 0.58),  # pleats
            (0.50, 0.52),
            (0.75, 0.58),
            (0.87, 0.65),
            (0.45, 0.78),
            (0.65, 0.75),
        ],
    ),
)


class ShapeLibrary:
    """Read-only catalog of reference shapes.

    Iteration order is authoring order. It has no effect on scores, but
    ties between equally good matches resolve to the earlier shape.
    """

    def __init__(self, shapes: Iterable[ReferenceShape] = ()):
        self._shapes = tuple(shapes)
        self._by_id = {}
        for shape in self._shapes:
            if shape.id in self._by_id:
                raise ValueError(f"Duplicate reference shape id: {shape.id}")
            self._by_id[shape.id] = shape

    def find_by_id(self, shape_id: str) -> Optional[ReferenceShape]:
        """Look up a shape by id. Returns None if not found."""
        return self._by_id.get(shape_id)

    def find_by_name(self, name: str) -> Optional[ReferenceShape]:
        """Look up a shape by display name. Returns None if not found."""
        for shape in self._shapes:
            if shape.name == name:
                return shape
        return None

    def all(self) -> tuple[ReferenceShape, ...]:
        return self._shapes

    def __iter__(self) -> Iterator[ReferenceShape]:
        return iter(self._shapes)

    def __len__(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._by_id

    def __repr__(self) -> str:
        ids = ", ".join(shape.id for shape in self._shapes)
        return f"ShapeLibrary([{ids}])"


DEFAULT_LIBRARY = ShapeLibrary(REFERENCE_SHAPES)


def _is_unit_coordinate(value) -> bool:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and 0.0 <= value <= 1.0


def _parse_shape_record(record: dict) -> Optional[ReferenceShape]:
    """Build a ReferenceShape from one JSON record, or None if malformed."""
    if not isinstance(record, dict):
        return None

    shape_id = record.get("id")
    points = record.get("points")
    if not isinstance(shape_id, str) or not shape_id or not isinstance(points, list):
        return None

    clean_points: list[Point] = []
    for pair in points:
        if (
            isinstance(pair, (list, tuple))
            and len(pair) == 2
            and all(_is_unit_coordinate(v) for v in pair)
        ):
            clean_points.append(Point(float(pair[0]), float(pair[1])))
        else:
            return None

    if not clean_points:
        return None

    return ReferenceShape(
        id=shape_id,
        name=str(record.get("name") or shape_id),
        points=tuple(clean_points),
        asset_path=str(record.get("asset_path") or default_asset_path(shape_id)),
    )


def load_reference_shapes(path: str | Path | None = None) -> ShapeLibrary:
    """Load the reference shape library from JSON.

    The file holds a list of records, for example:
    [{"id": "kurage", "name": "くらげ座", "points": [[0.55, 0.08], ...],
      "asset_path": "/constellations/kurage.svg"}, ...]

    Args:
        path: Optional custom path. Defaults to data/reference_shapes.json

    Returns:
        ShapeLibrary with the valid records in file order. Falls back to
        DEFAULT_LIBRARY if the file does not exist or cannot be parsed.
    """
    p = Path(path) if path is not None else DEFAULT_SHAPES_PATH
    if not p.exists():
        return DEFAULT_LIBRARY

    try:
        with open(p, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Warning: Failed to read reference shapes from {p}: {e}")
        print("Using built-in reference shapes")
        return DEFAULT_LIBRARY

    if not isinstance(raw, list):
        print(f"Warning: Expected a list of shapes in {p}, using built-in shapes")
        return DEFAULT_LIBRARY

    shapes: list[ReferenceShape] = []
    seen: set[str] = set()
    for record in raw:
        shape = _parse_shape_record(record)
        if shape is None:
            print(f"Warning: Skipping malformed reference shape record: {record!r}")
            continue
        if shape.id in seen:
            print(f"Warning: Skipping duplicate reference shape id: {shape.id}")
            continue
        seen.add(shape.id)
        shapes.append(shape)

    return ShapeLibrary(shapes)


def save_reference_shapes(library: Iterable[ReferenceShape], path: str | Path) -> None:
    """Write a shape library to JSON in the format load_reference_shapes reads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [shape.to_dict() for shape in library]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
