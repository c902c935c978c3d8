"""Constellation line segments.

A constellation stores its lines as pairs of indices into its own entry list
(0-6 for a seven-star constellation). These helpers build the default lines,
drop segments that do not fit the star list, and map local indices to indices
in a larger star list for rendering several constellations on one canvas.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, NamedTuple, Sequence


class ConstellationLine(NamedTuple):
    """Line between two stars, by index into the constellation's entries."""

    from_index: int
    to_index: int


def generate_date_order_lines(num_stars: int) -> List[ConstellationLine]:
    """Connect stars one after another in date order.

    Args:
        num_stars: Number of stars in the constellation

    Returns:
        List of (i, i + 1) lines; empty for fewer than two stars.

    Example:
        >>> generate_date_order_lines(3)
        [ConstellationLine(from_index=0, to_index=1), ConstellationLine(from_index=1, to_index=2)]
    """
    return [ConstellationLine(i, i + 1) for i in range(max(0, num_stars - 1))]


def validate_lines(
    lines: Iterable[Sequence[int]],
    num_stars: int,
) -> List[ConstellationLine]:
    """Keep only lines whose endpoints are distinct, in-range star indices."""
    clean: List[ConstellationLine] = []
    for line in lines:
        if not isinstance(line, (list, tuple)) or len(line) != 2:
            continue
        start, end = line
        if not isinstance(start, int) or not isinstance(end, int):
            continue
        if start == end:
            continue
        if 0 <= start < num_stars and 0 <= end < num_stars:
            clean.append(ConstellationLine(start, end))
    return clean


def to_global_lines(
    lines: Iterable[Sequence[int]],
    entry_ids: Sequence[int],
    id_to_index: Dict[int, int],
) -> List[ConstellationLine]:
    """Map constellation-local line indices to global star indices.

    Args:
        lines: Lines indexing into entry_ids
        entry_ids: Entry ids of the constellation, in star order
        id_to_index: Lookup from entry id to index in the global star list

    Returns:
        Lines indexing into the global star list. Lines whose entries are
        missing from id_to_index are skipped.
    """
    segments: List[ConstellationLine] = []
    for line in validate_lines(lines, len(entry_ids)):
        i = id_to_index.get(entry_ids[line.from_index])
        j = id_to_index.get(entry_ids[line.to_index])
        if i is not None and j is not None and i != j:
            segments.append(ConstellationLine(i, j))
    return segments
