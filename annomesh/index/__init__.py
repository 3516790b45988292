"""
Index module: level-based binning of coordinates.
"""

from annomesh.index.quantizer import (
    LevelQuantizer,
    PyramidQuantizer,
    TableQuantizer,
    epoch_millis,
    floor_key,
)

__all__ = [
    "LevelQuantizer",
    "PyramidQuantizer",
    "TableQuantizer",
    "epoch_millis",
    "floor_key",
]
