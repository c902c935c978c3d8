"""Tests for diary entry and constellation storage."""

from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pytest

from constellation_diary.diary import (
    CONSTELLATION_SIZE,
    DiaryStore,
    validate_date,
    validate_star_position,
)
from constellation_diary.lines import ConstellationLine
from constellation_diary.shapes import DEFAULT_LIBRARY, Point

KURAGE_POINTS = DEFAULT_LIBRARY.find_by_id("kurage").points


@pytest.fixture
def store(tmp_path: Path) -> DiaryStore:
    return DiaryStore(data_dir=tmp_path / "diary")


@pytest.fixture
def week_store(store: DiaryStore) -> DiaryStore:
    """Store with seven entries whose stars trace the jellyfish shape."""
    for day, position in enumerate(KURAGE_POINTS, start=1):
        store.add_entry(f"2025-11-{day:02d}", f"day {day}", position)
    return store


class TestValidation:
    """Tests for argument validation helpers."""

    def test_validate_date(self):
        """Test that ISO dates pass and other formats fail."""
        assert validate_date("2025-11-01") == "2025-11-01"
        assert validate_date("2025-1-1") == "2025-01-01"

        with pytest.raises(ValueError):
            validate_date("2025/11/01")
        with pytest.raises(ValueError):
            validate_date("2025-13-01")

    def test_validate_star_position(self):
        """Test that positions must lie in the unit square."""
        assert validate_star_position((0.5, 1.0)) == Point(0.5, 1.0)
        assert validate_star_position({"x": 0.0, "y": 0.2}) == Point(0.0, 0.2)

        with pytest.raises(ValueError):
            validate_star_position((1.2, 0.5))
        with pytest.raises(ValueError):
            validate_star_position((float("nan"), 0.5))


class TestDiaryEntries:
    """Tests for adding, reading and changing entries."""

    def test_store_creates_data_dir(self, tmp_path: Path):
        """Test that the data directory is created on init."""
        data_dir = tmp_path / "nested" / "diary"

        store = DiaryStore(data_dir=data_dir)

        assert store.data_dir == data_dir
        assert data_dir.exists()
        assert store.entries_file == data_dir / "entries.csv"

    def test_default_data_dir(self):
        """Test that the default location is in the home directory."""
        store = DiaryStore()

        assert store.data_dir == Path.home() / ".constellation_diary"

    def test_add_and_get_entry(self, store: DiaryStore):
        """Test that an added entry can be read back."""
        entry_id = store.add_entry("2025-11-01", "coffee", (0.2, 0.3))

        entry = store.get_entry(entry_id)

        assert entry is not None
        assert entry.date == "2025-11-01"
        assert entry.memo == "coffee"
        assert entry.star_position == Point(0.2, 0.3)
        assert entry.photo_path is None

    def test_ids_increase(self, store: DiaryStore):
        """Test that each entry gets a new id."""
        first = store.add_entry("2025-11-01", "", (0.1, 0.1))
        second = store.add_entry("2025-11-02", "", (0.2, 0.2))

        assert second > first

    def test_one_entry_per_date(self, store: DiaryStore):
        """Test that a second entry for the same date is rejected."""
        store.add_entry("2025-11-01", "first", (0.1, 0.1))

        with pytest.raises(ValueError, match="already exists"):
            store.add_entry("2025-11-01", "second", (0.2, 0.2))

    def test_rejects_position_outside_photo(self, store: DiaryStore):
        """Test that a star outside the unit square is rejected."""
        with pytest.raises(ValueError):
            store.add_entry("2025-11-01", "", (0.5, -0.1))

    def test_get_entry_missing(self, store: DiaryStore):
        """Test that unknown ids and dates return None."""
        assert store.get_entry(42) is None
        assert store.get_entry_by_date("2025-11-01") is None

    def test_entries_in_date_order(self, store: DiaryStore):
        """Test that entries are listed by date, not insertion order."""
        store.add_entry("2025-11-03", "c", (0.3, 0.3))
        store.add_entry("2025-11-01", "a", (0.1, 0.1))
        store.add_entry("2025-11-02", "b", (0.2, 0.2))

        assert [e.memo for e in store.get_all_entries()] == ["a", "b", "c"]

    def test_has_entry_for(self, store: DiaryStore):
        """Test the per-date entry check."""
        store.add_entry("2025-11-01", "", (0.1, 0.1))

        assert store.has_entry_for("2025-11-01")
        assert not store.has_entry_for("2025-11-02")
        assert not store.has_entry_for()

    def test_unpadded_date_is_same_day(self, store: DiaryStore):
        """Test that "2025-1-1" is stored as "2025-01-01" and counts as that day."""
        store.add_entry("2025-01-01", "first", (0.1, 0.1))

        with pytest.raises(ValueError, match="already exists"):
            store.add_entry("2025-1-1", "second", (0.2, 0.2))

        entry_id = store.add_entry("2025-1-2", "third", (0.3, 0.3))

        assert store.get_entry(entry_id).date == "2025-01-02"
        assert store.get_entry_by_date("2025-1-2").id == entry_id
        assert [e.date for e in store.get_all_entries()] == ["2025-01-01", "2025-01-02"]

    def test_has_entry_for_today_is_utc(self, store: DiaryStore):
        """Test that the default date is today's UTC date."""
        today = datetime.now(timezone.utc).date().isoformat()

        store.add_entry(today, "", (0.1, 0.1))

        assert store.has_entry_for()

    def test_deleted_id_not_reused(self, store: DiaryStore):
        """Test that deleting the newest entry does not free its id."""
        store.add_entry("2025-11-01", "", (0.1, 0.1))
        newest = store.add_entry("2025-11-02", "", (0.2, 0.2))

        store.delete_entry(newest)
        replacement = store.add_entry("2025-11-03", "", (0.3, 0.3))

        assert replacement > newest

    def test_update_entry(self, store: DiaryStore):
        """Test changing memo and star position."""
        entry_id = store.add_entry("2025-11-01", "old", (0.1, 0.1))

        store.update_entry(entry_id, memo="new", star_position=(0.6, 0.7))
        entry = store.get_entry(entry_id)

        assert entry.memo == "new"
        assert entry.star_position == Point(0.6, 0.7)

    def test_update_missing_entry(self, store: DiaryStore):
        """Test that updating an unknown entry raises KeyError."""
        with pytest.raises(KeyError):
            store.update_entry(99, memo="x")

    def test_delete_entry(self, store: DiaryStore):
        """Test that a deleted entry is gone."""
        entry_id = store.add_entry("2025-11-01", "", (0.1, 0.1))

        store.delete_entry(entry_id)

        assert store.get_entry(entry_id) is None
        with pytest.raises(KeyError):
            store.delete_entry(entry_id)


class TestPhotos:
    """Tests for photo storage."""

    def test_photo_saved_and_deleted(self, store: DiaryStore):
        """Test that a photo array is saved as PNG and removed with its entry."""
        photo = np.zeros((20, 30, 3), dtype=np.uint8)
        photo[5:10, 5:10] = [255, 0, 0]

        entry_id = store.add_entry("2025-11-01", "", (0.5, 0.5), photo=photo)
        entry = store.get_entry(entry_id)

        assert entry.photo_path is not None
        assert entry.photo_path.exists()
        assert entry.photo_path.suffix == ".png"

        store.delete_entry(entry_id)

        assert not entry.photo_path.exists()

    def test_missing_photo_file(self, store: DiaryStore, tmp_path: Path):
        """Test that a nonexistent photo path is rejected."""
        with pytest.raises(FileNotFoundError):
            store.add_entry("2025-11-01", "", (0.5, 0.5), photo=tmp_path / "nope.jpg")


class TestConstellations:
    """Tests for grouping entries into constellations."""

    def test_unassigned_entries(self, week_store: DiaryStore):
        """Test that all entries start unassigned."""
        unassigned = week_store.get_unassigned_entries()

        assert len(unassigned) == CONSTELLATION_SIZE
        assert week_store.can_create_constellation()

    def test_cannot_create_with_too_few_entries(self, store: DiaryStore):
        """Test that six entries are not enough."""
        for day in range(1, 7):
            store.add_entry(f"2025-11-{day:02d}", "", (0.1 * day, 0.5))

        assert not store.can_create_constellation()
        with pytest.raises(ValueError, match="unassigned"):
            store.create_constellation("Too small")

    def test_empty_name_rejected(self, week_store: DiaryStore):
        """Test that a blank name is rejected."""
        with pytest.raises(ValueError):
            week_store.create_constellation("   ")

    def test_create_constellation_matches_shape(self, week_store: DiaryStore):
        """Test that a jellyfish-shaped week is matched to kurage."""
        constellation_id = week_store.create_constellation("My jellyfish")

        constellation = week_store.get_constellation(constellation_id)

        assert constellation.name == "My jellyfish"
        assert constellation.matched_shape_id == "kurage"
        assert len(constellation.entry_ids) == CONSTELLATION_SIZE
        assert constellation.lines == [ConstellationLine(i, i + 1) for i in range(6)]
        assert week_store.get_unassigned_entries() == []

    def test_create_without_matching(self, week_store: DiaryStore):
        """Test that matching can be skipped."""
        constellation_id = week_store.create_constellation("Plain", match=False)

        assert week_store.get_constellation(constellation_id).matched_shape_id is None

    def test_unmatched_below_threshold(self, week_store: DiaryStore):
        """Test that no shape is stored when nothing reaches the threshold."""
        week_store.update_entry(1, star_position=(0.9, 0.02))
        constellation_id = week_store.create_constellation("Odd", threshold=1.0)

        assert week_store.get_constellation(constellation_id).matched_shape_id is None

    def test_custom_lines_validated(self, week_store: DiaryStore):
        """Test that invalid custom lines are dropped."""
        constellation_id = week_store.create_constellation(
            "Lines", lines=[(0, 3), (3, 9), (4, 4)]
        )

        assert week_store.get_constellation(constellation_id).lines == [
            ConstellationLine(0, 3)
        ]

    def test_uses_oldest_seven_entries(self, week_store: DiaryStore):
        """Test that an eighth entry stays unassigned."""
        week_store.add_entry("2025-11-08", "extra", (0.5, 0.5))

        week_store.create_constellation("Week one")
        unassigned = week_store.get_unassigned_entries()

        assert [e.date for e in unassigned] == ["2025-11-08"]
        assert not week_store.can_create_constellation()

    def test_entries_for_constellation(self, week_store: DiaryStore):
        """Test that a constellation's entries come back in star order."""
        constellation_id = week_store.create_constellation("Order")

        entries = week_store.get_entries_for(constellation_id)

        assert [e.star_position for e in entries] == list(KURAGE_POINTS)
        assert week_store.get_entries_for(999) == []

    def test_rank_shapes_for(self, week_store: DiaryStore):
        """Test ranking a stored constellation against all shapes."""
        constellation_id = week_store.create_constellation("Ranked")

        results = week_store.rank_shapes_for(constellation_id)

        assert len(results) == len(DEFAULT_LIBRARY)
        assert results[0].shape_id == "kurage"

    def test_rename_constellation(self, week_store: DiaryStore):
        """Test renaming and its error cases."""
        constellation_id = week_store.create_constellation("Before")

        week_store.rename_constellation(constellation_id, "After")

        assert week_store.get_constellation(constellation_id).name == "After"
        with pytest.raises(KeyError):
            week_store.rename_constellation(999, "Nope")
        with pytest.raises(ValueError):
            week_store.rename_constellation(constellation_id, "")

    def test_delete_constellation_frees_entries(self, week_store: DiaryStore):
        """Test that deleting a constellation makes its entries available."""
        constellation_id = week_store.create_constellation("Temporary")

        week_store.delete_constellation(constellation_id)

        assert week_store.get_constellation(constellation_id) is None
        assert len(week_store.get_unassigned_entries()) == CONSTELLATION_SIZE
        with pytest.raises(KeyError):
            week_store.delete_constellation(constellation_id)

    def test_new_entry_after_deleting_member_is_unassigned(
        self, week_store: DiaryStore
    ):
        """Test that a new entry never takes the id of a deleted member entry."""
        constellation_id = week_store.create_constellation("Week")
        week_store.delete_entry(7)

        entry_id = week_store.add_entry("2025-11-20", "new", (0.5, 0.5))

        assert entry_id != 7
        assert entry_id not in week_store.get_constellation(constellation_id).entry_ids
        assert [e.id for e in week_store.get_unassigned_entries(None)] == [entry_id]


class TestPersistence:
    """Tests for reloading data from the CSV cache."""

    def test_reload_from_disk(self, week_store: DiaryStore):
        """Test that a new store over the same directory sees the same data."""
        week_store.add_entry("2025-11-08", "", (0.5, 0.5))
        constellation_id = week_store.create_constellation("くらげの週")

        reloaded = DiaryStore(data_dir=week_store.data_dir)

        assert [e.memo for e in reloaded.get_all_entries()] == [
            e.memo for e in week_store.get_all_entries()
        ]
        assert reloaded.get_entry_by_date("2025-11-08").memo == ""

        constellation = reloaded.get_constellation(constellation_id)
        assert constellation.name == "くらげの週"
        assert constellation.matched_shape_id == "kurage"
        assert constellation.entry_ids == list(range(1, 8))
        assert len(constellation.lines) == 6
        assert [e.date for e in reloaded.get_unassigned_entries()] == ["2025-11-08"]

    def test_reset(self, week_store: DiaryStore):
        """Test that reset removes all data, on disk too."""
        week_store.create_constellation("Gone")

        week_store.reset()
        reloaded = DiaryStore(data_dir=week_store.data_dir)

        assert week_store.get_all_entries() == []
        assert week_store.get_all_constellations() == []
        assert reloaded.get_all_entries() == []
        assert reloaded.get_all_constellations() == []

    def test_ids_not_reused_after_reload(self, week_store: DiaryStore):
        """Test that id counters survive a reload."""
        constellation_id = week_store.create_constellation("Week")
        week_store.delete_entry(7)
        week_store.delete_constellation(constellation_id)

        reloaded = DiaryStore(data_dir=week_store.data_dir)
        entry_id = reloaded.add_entry("2025-11-20", "", (0.5, 0.5))

        assert entry_id == 8
        assert (week_store.data_dir / "meta.json").exists()

    def test_ids_without_counter_file(self, week_store: DiaryStore):
        """Test that ids listed by a constellation stay taken without meta.json."""
        week_store.create_constellation("Week")
        week_store.delete_entry(7)
        (week_store.data_dir / "meta.json").unlink()

        reloaded = DiaryStore(data_dir=week_store.data_dir)
        entry_id = reloaded.add_entry("2025-11-20", "", (0.5, 0.5))

        assert entry_id == 8
        assert [e.id for e in reloaded.get_unassigned_entries(None)] == [8]
