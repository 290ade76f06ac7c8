# src/tilelayer/raster/layout.py

"""
This module defines the regular tiling grid a layer's keys refer to.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from tilelayer.keys import KeyBounds, SpatialKey
from .codec import RasterInfo
from .grid import Extent

log = logging.getLogger(__name__)

__all__ = [
    "LayoutDefinition"
]

@dataclass(frozen=True)
class LayoutDefinition:
    """
    Regular grid of layout_cols x layout_rows tiles, each tile_cols x tile_rows
    pixels, covering extent. Key (0, 0) is the upper-left tile.
    """
    extent: Extent
    tile_cols: int
    tile_rows: int
    layout_cols: int
    layout_rows: int

    def __post_init__(self):
        if min(self.tile_cols, self.tile_rows, self.layout_cols, self.layout_rows) <= 0:
            raise ValueError(f"Layout dimensions must be positive, got {self}")

    @classmethod
    def from_raster(cls, info: RasterInfo, tile_size: int) -> "LayoutDefinition":
        """
        Layout anchored at the raster's upper-left corner.

        The extent grows right and down so partial edge tiles are full layout tiles.
        """
        layout_cols = math.ceil(info.cols / tile_size)
        layout_rows = math.ceil(info.rows / tile_size)
        raster_extent = info.extent
        cell_w = raster_extent.width / info.cols
        cell_h = raster_extent.height / info.rows
        extent = Extent(
            raster_extent.xmin,
            raster_extent.ymax - layout_rows * tile_size * cell_h,
            raster_extent.xmin + layout_cols * tile_size * cell_w,
            raster_extent.ymax
        )
        return cls(extent, tile_size, tile_size, layout_cols, layout_rows)

    @property
    def tile_size(self) -> Tuple[float, float]:
        """Width and height of one tile in map units."""
        return (self.extent.width / self.layout_cols, self.extent.height / self.layout_rows)

    @property
    def key_bounds(self) -> KeyBounds:
        return KeyBounds(SpatialKey(0, 0), SpatialKey(self.layout_cols - 1, self.layout_rows - 1))

    def key_for_point(self, x: float, y: float) -> SpatialKey:
        tile_w, tile_h = self.tile_size
        col = math.floor((x - self.extent.xmin) / tile_w)
        row = math.floor((self.extent.ymax - y) / tile_h)
        return SpatialKey(
            min(max(col, 0), self.layout_cols - 1),
            min(max(row, 0), self.layout_rows - 1)
        )

    def key_for_extent(self, extent: Extent) -> SpatialKey:
        """Key of the tile holding the extent's center."""
        return self.key_for_point(*extent.center)

    def key_extent(self, key: SpatialKey) -> Extent:
        tile_w, tile_h = self.tile_size
        xmin = self.extent.xmin + key.col * tile_w
        ymax = self.extent.ymax - key.row * tile_h
        return Extent(xmin, ymax - tile_h, xmin + tile_w, ymax)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extent": self.extent.to_dict(),
            "tile_cols": self.tile_cols,
            "tile_rows": self.tile_rows,
            "layout_cols": self.layout_cols,
            "layout_rows": self.layout_rows
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LayoutDefinition":
        return cls(
            Extent.from_dict(data["extent"]),
            data["tile_cols"],
            data["tile_rows"],
            data["layout_cols"],
            data["layout_rows"]
        )
