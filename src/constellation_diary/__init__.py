"""Constellation Diary: daily photo stars grouped into constellations.

Each diary entry places one star on a photo. Seven entries form a
constellation, whose star pattern is matched against a small library of
reference shapes.
"""

__version__ = "0.1.0"
__author__ = "Maximilian Sperlich"
__email__ = "your.email@example.com"
