"""Export the built-in reference shapes to JSON.

Outputs:
- data/reference_shapes.json with id, name, points and asset_path per shape.

The file is read back by constellation_diary.shapes.load_reference_shapes.
"""

from pathlib import Path

from constellation_diary.shapes import DEFAULT_LIBRARY, save_reference_shapes

OUT_PATH = Path(__file__).parent.parent / "data" / "reference_shapes.json"


def main():
    save_reference_shapes(DEFAULT_LIBRARY, OUT_PATH)
    print(f"Saved {len(DEFAULT_LIBRARY)} reference shapes to {OUT_PATH}")


if __name__ == "__main__":
    main()
