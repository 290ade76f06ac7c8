# src/tilelayer/raster/grid.py

"""
This module defines the immutable value types that describe where pixels live.

GridBounds addresses a rectangle in pixel space, Extent a rectangle in map
units, and the projected extents pair an Extent with the CRS (and optionally
the acquisition time) of the raster it came from.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from rasterio.crs import CRS
from rasterio.windows import Window

from tilelayer.exceptions import InvalidWindowError

log = logging.getLogger(__name__)

__all__ = [
    "GridBounds",
    "Extent",
    "ProjectedExtent",
    "TemporalProjectedExtent"
]

@dataclass(frozen=True)
class GridBounds:
    """
    Inclusive integer rectangle in pixel space.

    Args:
        col_min: First column (inclusive).
        row_min: First row (inclusive).
        col_max: Last column (inclusive).
        row_max: Last row (inclusive).

    Raises:
        InvalidWindowError: If a bound is negative or min exceeds max on an axis.
    """
    col_min: int
    row_min: int
    col_max: int
    row_max: int

    def __post_init__(self):
        if min(self.col_min, self.row_min, self.col_max, self.row_max) < 0:
            raise InvalidWindowError(f"GridBounds must be non-negative, got {self}")
        if self.col_min > self.col_max or self.row_min > self.row_max:
            raise InvalidWindowError(f"GridBounds min must not exceed max, got {self}")

    @classmethod
    def from_dimensions(cls, cols: int, rows: int) -> "GridBounds":
        """Full-grid bounds of a raster with the given size."""
        return cls(0, 0, cols - 1, rows - 1)

    @property
    def width(self) -> int:
        return self.col_max - self.col_min + 1

    @property
    def height(self) -> int:
        return self.row_max - self.row_min + 1

    @property
    def size(self) -> int:
        return self.width * self.height

    def contains(self, other: "GridBounds") -> bool:
        return (
            self.col_min <= other.col_min and other.col_max <= self.col_max and
            self.row_min <= other.row_min and other.row_max <= self.row_max
        )

    def intersects(self, other: "GridBounds") -> bool:
        return not (
            other.col_max < self.col_min or other.col_min > self.col_max or
            other.row_max < self.row_min or other.row_min > self.row_max
        )

    def intersection(self, other: "GridBounds") -> Optional["GridBounds"]:
        """Overlapping rectangle, or None when the two do not touch."""
        if not self.intersects(other):
            return None
        return GridBounds(
            max(self.col_min, other.col_min),
            max(self.row_min, other.row_min),
            min(self.col_max, other.col_max),
            min(self.row_max, other.row_max)
        )

    def to_window(self) -> Window:
        """Convert to a rasterio Window (offsets plus lengths)."""
        return Window(self.col_min, self.row_min, self.width, self.height)

    def to_dict(self) -> Dict[str, int]:
        return {
            "col_min": self.col_min,
            "row_min": self.row_min,
            "col_max": self.col_max,
            "row_max": self.row_max
        }

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> "GridBounds":
        return cls(data["col_min"], data["row_min"], data["col_max"], data["row_max"])

@dataclass(frozen=True)
class Extent:
    """Rectangle in map units: (xmin, ymin, xmax, ymax)."""
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self):
        if self.xmin > self.xmax or self.ymin > self.ymax:
            raise ValueError(f"Invalid extent, min exceeds max: {self}")

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.xmin + self.xmax) / 2.0, (self.ymin + self.ymax) / 2.0)

    def intersects(self, other: "Extent") -> bool:
        return not (
            other.xmax < self.xmin or other.xmin > self.xmax or
            other.ymax < self.ymin or other.ymin > self.ymax
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.xmin, self.ymin, self.xmax, self.ymax)

    def to_dict(self) -> Dict[str, float]:
        return {"xmin": self.xmin, "ymin": self.ymin, "xmax": self.xmax, "ymax": self.ymax}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Extent":
        return cls(data["xmin"], data["ymin"], data["xmax"], data["ymax"])

@dataclass(frozen=True)
class ProjectedExtent:
    """Geographic footprint of a tile that has not been keyed to a layout yet."""
    extent: Extent
    crs: Optional[CRS]

@dataclass(frozen=True)
class TemporalProjectedExtent:
    """ProjectedExtent plus the zoned acquisition time of the source raster."""
    extent: Extent
    crs: Optional[CRS]
    time: datetime

    @property
    def projected_extent(self) -> ProjectedExtent:
        return ProjectedExtent(self.extent, self.crs)
