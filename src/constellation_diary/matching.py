"""Point-set matching of user constellations against reference shapes.

Both point sets are normalized (centroid moved to the origin, mean distance
from the origin scaled to 1), paired up point by point, and scored by the mean
squared distance between the pairs. The error is mapped to a similarity in
[0, 1]:

    similarity = exp(-2 * MSE) * max(0, 1 - 0.1 * |n_query - n_reference|)

Normalization removes translation and uniform scale only. Rotated or mirrored
drawings do not match their upright shape well; this is a known limitation.

Pairing is greedy by default: each query point, in input order, takes the
nearest reference point not already taken. The result depends on the order
of the query points and is not the minimum-cost assignment. The "optimal"
strategy solves the assignment problem instead, which changes which shape
some drawings match, so it is opt-in.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
from scipy.optimize import linear_sum_assignment
from scipy.spatial.distance import cdist

from constellation_diary.shapes import DEFAULT_LIBRARY, ReferenceShape

DEFAULT_THRESHOLD = 0.3

# Tuned by hand against the built-in shapes. Changing either one changes
# which shape a given drawing matches.
SIMILARITY_DECAY = 2.0
POINT_COUNT_PENALTY = 0.1

STRATEGIES = ("greedy", "optimal")


@dataclass(frozen=True)
class MatchResult:
    """Similarity of a query point set to one reference shape."""

    shape_id: str
    shape_name: str
    similarity: float
    asset_path: str

    def to_dict(self) -> dict:
        return {
            "shape_id": self.shape_id,
            "shape_name": self.shape_name,
            "similarity": self.similarity,
            "asset_path": self.asset_path,
        }


def to_point_array(points) -> np.ndarray:
    """Convert points to a float array of shape (N, 2), rejecting bad input.

    Accepts an (N, 2) array-like, a sequence of Point / (x, y) pairs, objects
    with x and y attributes, or {"x": ..., "y": ...} dicts.

    Args:
        points: Point collection to convert

    Returns:
        Float array (N, 2). Empty input gives an array of shape (0, 2).

    Raises:
        ValueError: If the input is not a list of 2D points or any coordinate
            is NaN or infinite
    """
    if isinstance(points, np.ndarray):
        rows = points
    else:
        rows = []
        for p in points:
            if isinstance(p, dict):
                if "x" not in p or "y" not in p:
                    raise ValueError(f"Point dict must have 'x' and 'y' keys: {p!r}")
                rows.append((p["x"], p["y"]))
            elif hasattr(p, "x") and hasattr(p, "y"):
                rows.append((p.x, p.y))
            else:
                rows.append(p)

    try:
        arr = np.asarray(rows, dtype=float)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Points must be numeric (x, y) pairs: {e}") from e

    if arr.size == 0:
        return np.empty((0, 2), dtype=float)

    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Points must have shape (N, 2), got {arr.shape}")

    if not np.all(np.isfinite(arr)):
        raise ValueError("Point coordinates must be finite numbers")

    return arr


def normalize_points(points: np.ndarray) -> tuple[np.ndarray, float, np.ndarray]:
    """Normalize a point set to zero mean and unit mean distance.

    Args:
        points: Array of shape (N, 2) with point coordinates

    Returns:
        Tuple of (normalized_points, scale, center). Scale falls back to 1.0
        for empty sets and for sets whose points all coincide.
    """
    if len(points) == 0:
        return points.copy(), 1.0, np.zeros(2)

    center = np.mean(points, axis=0)
    centered = points - center
    scale = float(np.mean(np.linalg.norm(centered, axis=1)))

    if scale < 1e-10:
        scale = 1.0

    return centered / scale, scale, center


def find_correspondence(
    query: np.ndarray,
    reference: np.ndarray,
    strategy: str = "greedy",
) -> np.ndarray:
    """Pair each query point with a distinct reference point.

    Greedy: query points are visited in input order and each takes the
    nearest unused reference point by squared distance (lowest index on
    ties). Optimal: minimum total squared distance via the Hungarian method.

    Args:
        query: Normalized query points (N, 2)
        reference: Normalized reference points (M, 2)
        strategy: "greedy" or "optimal"

    Returns:
        Integer array (N,) of reference indices; -1 marks query points left
        without a partner because the reference set ran out.

    Raises:
        ValueError: If strategy is unknown
    """
    if strategy not in STRATEGIES:
        raise ValueError(
            f"Unknown correspondence strategy '{strategy}', "
            f"expected one of {STRATEGIES}"
        )

    correspondence = np.full(len(query), -1, dtype=int)
    if len(query) == 0 or len(reference) == 0:
        return correspondence

    distances = cdist(query, reference, "sqeuclidean")

    if strategy == "optimal":
        rows, cols = linear_sum_assignment(distances)
        correspondence[rows] = cols
        return correspondence

    used = np.zeros(len(reference), dtype=bool)
    for i in range(len(query)):
        if used.all():
            break
        row = np.where(used, np.inf, distances[i])
        j = int(np.argmin(row))
        correspondence[i] = j
        used[j] = True

    return correspondence


def mean_squared_error(
    query: np.ndarray,
    reference: np.ndarray,
    correspondence: np.ndarray,
) -> float:
    """Mean squared distance over paired points; inf if nothing is paired."""
    paired = correspondence >= 0
    if not np.any(paired):
        return math.inf

    diffs = query[paired] - reference[correspondence[paired]]
    return float(np.mean(np.sum(diffs**2, axis=1)))


def point_count_penalty(query_count: int, reference_count: int) -> float:
    """Penalty factor for mismatched point counts, 0 at a difference of 10."""
    diff = abs(query_count - reference_count)
    return max(0.0, 1.0 - POINT_COUNT_PENALTY * diff)


def similarity_from_error(mse: float) -> float:
    """Map mean squared error to a similarity in [0, 1]."""
    return math.exp(-SIMILARITY_DECAY * mse)


def _score_normalized(
    normalized_query: np.ndarray,
    shape: ReferenceShape,
    strategy: str,
) -> float:
    reference = np.asarray(shape.points, dtype=float)
    normalized_reference, _, _ = normalize_points(reference)

    correspondence = find_correspondence(
        normalized_query, normalized_reference, strategy=strategy
    )
    mse = mean_squared_error(normalized_query, normalized_reference, correspondence)

    penalty = point_count_penalty(len(normalized_query), len(reference))
    return similarity_from_error(mse) * penalty


def calculate_similarity(
    query_points,
    shape: ReferenceShape,
    strategy: str = "greedy",
) -> float:
    """Compute similarity (0-1) between a query point set and a shape.

    Args:
        query_points: Query points, see to_point_array for accepted forms
        shape: Reference shape to compare against
        strategy: Correspondence strategy, "greedy" (default) or "optimal"

    Returns:
        Similarity in [0, 1]; 1.0 means identical after normalization.
        An empty query scores 0.0.

    Raises:
        ValueError: If the query contains malformed points
    """
    query = to_point_array(query_points)
    normalized_query, _, _ = normalize_points(query)
    return _score_normalized(normalized_query, shape, strategy)


def _score_library(
    query_points,
    library: Iterable[ReferenceShape],
    strategy: str,
) -> list[MatchResult]:
    query = to_point_array(query_points)
    if len(query) == 0:
        return []

    normalized_query, _, _ = normalize_points(query)

    return [
        MatchResult(
            shape_id=shape.id,
            shape_name=shape.name,
            similarity=_score_normalized(normalized_query, shape, strategy),
            asset_path=shape.asset_path,
        )
        for shape in library
    ]


def find_best_match(
    query_points,
    threshold: float = DEFAULT_THRESHOLD,
    library: Iterable[ReferenceShape] = DEFAULT_LIBRARY,
    strategy: str = "greedy",
) -> Optional[MatchResult]:
    """Find the reference shape most similar to the query points.

    Args:
        query_points: Star positions placed by the user (normalized 0-1)
        threshold: Minimum similarity for a match (default: 0.3)
        library: Reference shapes to compare against
        strategy: Correspondence strategy, "greedy" (default) or "optimal"

    Returns:
        Best MatchResult, or None if the query is empty, the library is
        empty, or the best similarity is below threshold. Equal scores
        resolve to the shape that comes first in the library.

    Example:
        >>> match = find_best_match([(0.55, 0.08), (0.28, 0.15), (0.78, 0.18),
        ...                          (0.5, 0.45), (0.12, 0.85), (0.31, 0.98),
        ...                          (0.71, 0.88)])
        >>> match.shape_id
        'kurage'
    """
    best: Optional[MatchResult] = None

    for result in _score_library(query_points, library, strategy):
        if best is None or result.similarity > best.similarity:
            best = result

    if best is None or best.similarity < threshold:
        return None

    return best


def rank_all(
    query_points,
    library: Iterable[ReferenceShape] = DEFAULT_LIBRARY,
    strategy: str = "greedy",
) -> list[MatchResult]:
    """Score the query against every reference shape, best first.

    Shapes with equal similarity keep their library order. Returns an empty
    list for an empty query.
    """
    results = _score_library(query_points, library, strategy)
    results.sort(key=lambda r: r.similarity, reverse=True)
    return results
