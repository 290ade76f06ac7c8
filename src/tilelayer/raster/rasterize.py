# src/tilelayer/raster/rasterize.py

"""
Thin adapter over rasterio's scan conversion.

Window planning only needs to know which cells of a coarse grid a geometry
touches; this module answers that question and nothing else.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Tuple

import numpy as np
from rasterio.features import rasterize
from rasterio.transform import Affine
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

log = logging.getLogger(__name__)

__all__ = [
    "RasterizeOptions",
    "foreach_cell_by_geometry"
]

@dataclass(frozen=True)
class RasterizeOptions:
    """
    Options forwarded to the scan converter.

    Args:
        include_partial: Accept cells the geometry only partially covers.
            When False, a cell is accepted only if its center is covered.
    """
    include_partial: bool = True

def foreach_cell_by_geometry(
    geometry: Any,
    out_shape: Tuple[int, int],
    transform: Affine,
    options: RasterizeOptions,
    callback: Callable[[int, int], None]
) -> None:
    """
    Invoke callback(col, row) for every grid cell covered by geometry.

    Args:
        geometry: Shapely geometry (or GeoJSON-like mapping) in the grid's CRS.
        out_shape: (rows, cols) of the grid.
        transform: Affine transform of the grid.
        options: RasterizeOptions controlling partial coverage.
        callback: Receives each covered cell in row-major order.
    """
    if not isinstance(geometry, BaseGeometry):
        geometry = shape(geometry)
    if geometry.is_empty or out_shape[0] == 0 or out_shape[1] == 0:
        return

    burned = rasterize(
        [(geometry, 1)],
        out_shape=out_shape,
        transform=transform,
        fill=0,
        all_touched=options.include_partial,
        dtype="uint8"
    )

    for row, col in np.argwhere(burned == 1):
        callback(int(col), int(row))
