"""Diary entry and constellation storage.

Each diary entry is one day's photo, a short memo, and the position of the
star the user placed on the photo (normalized to 0-1, y down). Once seven
entries are not yet part of a constellation they can be grouped into a new
constellation, which is matched against the reference shapes.

Tables are kept as pandas DataFrames and cached as CSV files in a data
directory; photos are saved as PNG files next to them.
"""

import json
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
from PIL import Image

from constellation_diary.lines import (
    ConstellationLine,
    generate_date_order_lines,
    validate_lines,
)
from constellation_diary.matching import (
    DEFAULT_THRESHOLD,
    MatchResult,
    find_best_match,
    rank_all,
    to_point_array,
)
from constellation_diary.shapes import DEFAULT_LIBRARY, Point, ShapeLibrary

CONSTELLATION_SIZE = 7

ENTRY_COLUMNS = ["id", "date", "memo", "x", "y", "photo_path", "created_at"]
CONSTELLATION_COLUMNS = [
    "id",
    "name",
    "entry_ids",
    "lines",
    "matched_shape_id",
    "created_at",
]


@dataclass
class DiaryEntry:
    """One day's diary record."""

    id: int
    date: str
    memo: str
    star_position: Point
    photo_path: Optional[Path] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Constellation:
    """Seven diary entries grouped under a user-chosen name."""

    id: int
    name: str
    entry_ids: list[int]
    lines: list[ConstellationLine]
    matched_shape_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


def validate_date(value: str) -> str:
    """Check a YYYY-MM-DD date string and return it zero-padded.

    "2025-1-1" is accepted and returned as "2025-01-01", so every stored date
    has one spelling and sorts correctly as a string.
    """
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError) as e:
        raise ValueError(f"Date must be in YYYY-MM-DD format: {value!r}") from e
    return parsed.date().isoformat()


def validate_star_position(position) -> Point:
    """Check that a star position lies inside the unit square."""
    arr = to_point_array([position])
    x, y = arr[0]
    if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
        raise ValueError(f"Star position must be within [0, 1]: ({x}, {y})")
    return Point(float(x), float(y))


class DiaryStore:
    """CSV-backed store for diary entries and constellations."""

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        library: ShapeLibrary = DEFAULT_LIBRARY,
    ):
        """Initialize the store.

        Args:
            data_dir: Directory for the CSV tables and photos
                (default: ~/.constellation_diary)
            library: Reference shapes new constellations are matched against
        """
        if data_dir is None:
            data_dir = Path.home() / ".constellation_diary"

        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.entries_file = self.data_dir / "entries.csv"
        self.constellations_file = self.data_dir / "constellations.csv"
        self.meta_file = self.data_dir / "meta.json"
        self.photos_dir = self.data_dir / "photos"
        self.library = library

        self._entries = self._load_table(
            self.entries_file,
            ENTRY_COLUMNS,
            {"memo": str, "date": str, "photo_path": str, "created_at": str},
        )
        self._constellations = self._load_table(
            self.constellations_file,
            CONSTELLATION_COLUMNS,
            {
                "name": str,
                "entry_ids": str,
                "lines": str,
                "matched_shape_id": str,
                "created_at": str,
            },
        )
        self._next_ids = self._load_next_ids()

    # ------------------------------------------------------------------
    # Table persistence
    # ------------------------------------------------------------------

    @staticmethod
    def _load_table(path: Path, columns: list[str], dtypes: dict) -> pd.DataFrame:
        if not path.exists():
            return pd.DataFrame(columns=columns)

        # keep_default_na=False keeps empty memos as "" instead of NaN
        table = pd.read_csv(path, dtype=dtypes, keep_default_na=False)
        missing = set(columns) - set(table.columns)
        if missing:
            raise ValueError(f"{path} is missing columns: {sorted(missing)}")

        return table[columns]

    def _save(self) -> None:
        self._entries.to_csv(self.entries_file, index=False)
        self._constellations.to_csv(self.constellations_file, index=False)
        with open(self.meta_file, "w", encoding="utf-8") as f:
            json.dump({"next_ids": self._next_ids}, f, indent=2)

    @staticmethod
    def _append(table: pd.DataFrame, record: dict, columns: list[str]) -> pd.DataFrame:
        row = pd.DataFrame([record], columns=columns)
        if table.empty:
            return row
        return pd.concat([table, row], ignore_index=True)

    @staticmethod
    def _max_id(table: pd.DataFrame) -> int:
        if table.empty:
            return 0
        return int(table["id"].astype(int).max())

    def _load_next_ids(self) -> dict[str, int]:
        """Read the id counters, never below the ids already in use.

        Ids are not reused after a delete, so an entry id a constellation
        still lists can never point at a newer entry.
        """
        highest_entry = max([self._max_id(self._entries), *self._assigned_entry_ids()])
        next_ids = {
            "entries": highest_entry + 1,
            "constellations": self._max_id(self._constellations) + 1,
        }

        if self.meta_file.exists():
            try:
                with open(self.meta_file, "r", encoding="utf-8") as f:
                    stored = json.load(f).get("next_ids", {})
                for key in next_ids:
                    next_ids[key] = max(next_ids[key], int(stored.get(key, 1)))
            except (OSError, ValueError, AttributeError) as e:
                print(f"Warning: Failed to read {self.meta_file}: {e}")

        return next_ids

    def _allocate_id(self, table_name: str) -> int:
        row_id = self._next_ids[table_name]
        self._next_ids[table_name] = row_id + 1
        return row_id

    @staticmethod
    def _row_mask(table: pd.DataFrame, row_id: int) -> pd.Series:
        if table.empty:
            return pd.Series(False, index=table.index)
        return table["id"].astype(int) == int(row_id)

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_entry(row: pd.Series) -> DiaryEntry:
        photo = str(row["photo_path"])
        return DiaryEntry(
            id=int(row["id"]),
            date=str(row["date"]),
            memo=str(row["memo"]),
            star_position=Point(float(row["x"]), float(row["y"])),
            photo_path=Path(photo) if photo else None,
            created_at=datetime.fromisoformat(str(row["created_at"])),
        )

    @staticmethod
    def _row_to_constellation(row: pd.Series) -> Constellation:
        matched = str(row["matched_shape_id"])
        return Constellation(
            id=int(row["id"]),
            name=str(row["name"]),
            entry_ids=[int(i) for i in json.loads(row["entry_ids"])],
            lines=[
                ConstellationLine(int(a), int(b)) for a, b in json.loads(row["lines"])
            ],
            matched_shape_id=matched or None,
            created_at=datetime.fromisoformat(str(row["created_at"])),
        )

    # ------------------------------------------------------------------
    # Diary entries
    # ------------------------------------------------------------------

    def _save_photo(self, entry_id: int, photo) -> Path:
        """Save a photo (PIL image, RGB array, or image file path) as PNG."""
        if isinstance(photo, Image.Image):
            image = photo
        elif isinstance(photo, np.ndarray):
            image = Image.fromarray(photo.astype(np.uint8))
        else:
            source = Path(photo)
            if not source.exists():
                raise FileNotFoundError(f"Photo not found: {source}")
            image = Image.open(source)

        self.photos_dir.mkdir(parents=True, exist_ok=True)
        photo_path = self.photos_dir / f"entry_{entry_id:05d}.png"
        image.convert("RGB").save(photo_path, format="PNG")
        print(f"Saved photo to {photo_path}")
        return photo_path

    def add_entry(
        self,
        date: str,
        memo: str,
        star_position,
        photo=None,
    ) -> int:
        """Add a diary entry.

        Args:
            date: Entry date (YYYY-MM-DD); one entry per date
            memo: Short note for the day
            star_position: Star position on the photo, (x, y) within 0-1
            photo: Optional PIL image, RGB array, or path to an image file

        Returns:
            New entry id

        Raises:
            ValueError: If the date is malformed or already has an entry, or
                the star position lies outside the unit square
        """
        date = validate_date(date)
        position = validate_star_position(star_position)
        if self.has_entry_for(date):
            raise ValueError(f"An entry for {date} already exists")

        entry_id = self._allocate_id("entries")
        photo_path = self._save_photo(entry_id, photo) if photo is not None else None

        record = {
            "id": entry_id,
            "date": date,
            "memo": memo,
            "x": position.x,
            "y": position.y,
            "photo_path": str(photo_path) if photo_path else "",
            "created_at": datetime.now().isoformat(),
        }
        self._entries = self._append(self._entries, record, ENTRY_COLUMNS)
        self._save()

        return entry_id

    def get_entry(self, entry_id: int) -> Optional[DiaryEntry]:
        mask = self._row_mask(self._entries, entry_id)
        if not mask.any():
            return None
        return self._row_to_entry(self._entries.loc[mask].iloc[0])

    def get_entry_by_date(self, date: str) -> Optional[DiaryEntry]:
        date = validate_date(date)
        if self._entries.empty:
            return None
        matches = self._entries[self._entries["date"] == date]
        if matches.empty:
            return None
        return self._row_to_entry(matches.iloc[0])

    def get_all_entries(self) -> list[DiaryEntry]:
        """Return all entries in date order."""
        if self._entries.empty:
            return []
        ordered = self._entries.sort_values(["date", "id"], kind="stable")
        return [self._row_to_entry(row) for _, row in ordered.iterrows()]

    def has_entry_for(self, date: Optional[str] = None) -> bool:
        """Check whether an entry exists for a date (default: today, UTC).

        "Today" is the UTC calendar date, not the local one, so shortly after
        local midnight east of UTC it can still be yesterday.
        """
        if date is None:
            date = datetime.now(timezone.utc).date().isoformat()
        return self.get_entry_by_date(date) is not None

    def update_entry(
        self,
        entry_id: int,
        memo: Optional[str] = None,
        star_position=None,
    ) -> None:
        """Update the memo and/or star position of an entry.

        Raises:
            KeyError: If no entry has this id
            ValueError: If the new star position is outside the unit square
        """
        mask = self._row_mask(self._entries, entry_id)
        if not mask.any():
            raise KeyError(f"No diary entry with id {entry_id}")

        if memo is not None:
            self._entries.loc[mask, "memo"] = memo
        if star_position is not None:
            position = validate_star_position(star_position)
            self._entries.loc[mask, "x"] = position.x
            self._entries.loc[mask, "y"] = position.y

        self._save()

    def delete_entry(self, entry_id: int) -> None:
        """Delete an entry and its photo.

        Raises:
            KeyError: If no entry has this id
        """
        entry = self.get_entry(entry_id)
        if entry is None:
            raise KeyError(f"No diary entry with id {entry_id}")

        if entry.photo_path is not None:
            entry.photo_path.unlink(missing_ok=True)

        mask = self._row_mask(self._entries, entry_id)
        self._entries = self._entries.loc[~mask].reset_index(drop=True)
        self._save()

    def _assigned_entry_ids(self) -> set[int]:
        return {
            entry_id
            for constellation in self.get_all_constellations()
            for entry_id in constellation.entry_ids
        }

    def get_unassigned_entries(
        self, limit: Optional[int] = CONSTELLATION_SIZE
    ) -> list[DiaryEntry]:
        """Return entries not used by any constellation, oldest first.

        Args:
            limit: Maximum number of entries (default: 7); None for all
        """
        used = self._assigned_entry_ids()
        unassigned = [e for e in self.get_all_entries() if e.id not in used]
        if limit is None:
            return unassigned
        return unassigned[:limit]

    def can_create_constellation(self) -> bool:
        return len(self.get_unassigned_entries()) >= CONSTELLATION_SIZE

    # ------------------------------------------------------------------
    # Constellations
    # ------------------------------------------------------------------

    def create_constellation(
        self,
        name: str,
        lines: Optional[Iterable[Sequence[int]]] = None,
        match: bool = True,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> int:
        """Group the oldest seven unassigned entries into a constellation.

        Args:
            name: Constellation name chosen by the user
            lines: Lines between stars as index pairs (0-6); defaults to
                connecting the stars in date order
            match: Whether to match the stars against the reference shapes
            threshold: Minimum similarity for a reference shape match

        Returns:
            New constellation id

        Raises:
            ValueError: If the name is empty or fewer than seven entries are
                unassigned
        """
        name = name.strip()
        if not name:
            raise ValueError("Constellation name must not be empty")

        entries = self.get_unassigned_entries(CONSTELLATION_SIZE)
        if len(entries) < CONSTELLATION_SIZE:
            raise ValueError(
                f"Need {CONSTELLATION_SIZE} unassigned entries to create a "
                f"constellation, have {len(entries)}"
            )

        if lines is None:
            clean_lines = generate_date_order_lines(len(entries))
        else:
            clean_lines = validate_lines(lines, len(entries))

        matched_id = None
        if match:
            best = find_best_match(
                [e.star_position for e in entries],
                threshold=threshold,
                library=self.library,
            )
            if best is not None:
                matched_id = best.shape_id
                print(
                    f"Matched '{name}' to {best.shape_name} "
                    f"(similarity {best.similarity:.2f})"
                )

        constellation_id = self._allocate_id("constellations")
        record = {
            "id": constellation_id,
            "name": name,
            "entry_ids": json.dumps([e.id for e in entries]),
            "lines": json.dumps([list(line) for line in clean_lines]),
            "matched_shape_id": matched_id or "",
            "created_at": datetime.now().isoformat(),
        }
        self._constellations = self._append(
            self._constellations, record, CONSTELLATION_COLUMNS
        )
        self._save()

        return constellation_id

    def get_constellation(self, constellation_id: int) -> Optional[Constellation]:
        mask = self._row_mask(self._constellations, constellation_id)
        if not mask.any():
            return None
        return self._row_to_constellation(self._constellations.loc[mask].iloc[0])

    def get_all_constellations(self) -> list[Constellation]:
        """Return all constellations in creation order."""
        if self._constellations.empty:
            return []
        ordered = self._constellations.sort_values("id", key=lambda s: s.astype(int))
        return [self._row_to_constellation(row) for _, row in ordered.iterrows()]

    def get_entries_for(self, constellation_id: int) -> list[DiaryEntry]:
        """Return a constellation's entries in star order.

        Entries deleted since the constellation was created are skipped.
        Unknown constellation ids give an empty list.
        """
        constellation = self.get_constellation(constellation_id)
        if constellation is None:
            return []

        entries = [self.get_entry(entry_id) for entry_id in constellation.entry_ids]
        return [e for e in entries if e is not None]

    def rank_shapes_for(self, constellation_id: int) -> list[MatchResult]:
        """Score a constellation's stars against every reference shape."""
        entries = self.get_entries_for(constellation_id)
        return rank_all([e.star_position for e in entries], library=self.library)

    def rename_constellation(self, constellation_id: int, name: str) -> None:
        """Rename a constellation.

        Raises:
            KeyError: If no constellation has this id
            ValueError: If the name is empty
        """
        name = name.strip()
        if not name:
            raise ValueError("Constellation name must not be empty")

        mask = self._row_mask(self._constellations, constellation_id)
        if not mask.any():
            raise KeyError(f"No constellation with id {constellation_id}")

        self._constellations.loc[mask, "name"] = name
        self._save()

    def delete_constellation(self, constellation_id: int) -> None:
        """Delete a constellation; its entries become unassigned again.

        Raises:
            KeyError: If no constellation has this id
        """
        mask = self._row_mask(self._constellations, constellation_id)
        if not mask.any():
            raise KeyError(f"No constellation with id {constellation_id}")

        self._constellations = self._constellations.loc[~mask].reset_index(drop=True)
        self._save()

    def reset(self) -> None:
        """Delete all entries, constellations and photos."""
        self._entries = pd.DataFrame(columns=ENTRY_COLUMNS)
        self._constellations = pd.DataFrame(columns=CONSTELLATION_COLUMNS)
        if self.photos_dir.exists():
            shutil.rmtree(self.photos_dir)
        self._save()
        print("All diary data has been reset")
