# src/tilelayer/raster/windows.py

"""
This module partitions a raster's pixel grid into read windows.

Windows are sized so each one can be decoded on its own without touching the
rest of the raster. When the raster's native storage chunk (segment) size is
known, window edges are kept on segment boundaries so no chunk is decoded
twice.
"""

import logging
import math
from typing import Any, Callable, List, Optional

from rasterio.transform import Affine, from_bounds

from .grid import Extent, GridBounds
from .rasterize import RasterizeOptions, foreach_cell_by_geometry

log = logging.getLogger(__name__)

__all__ = [
    "best_factor",
    "window_step",
    "plan_windows",
    "plan_grid",
    "plan_segment_windows",
    "plan_geometry"
]

def best_factor(max_size: int, segment: int) -> int:
    """
    Largest quotient segment // i (i >= 2, i <= sqrt(segment)) that fits max_size.

    Falls back to max_size when no divisor qualifies, in which case windows will
    split native segments.
    """
    i = 2
    while i * i <= segment:
        if segment % i == 0 and segment // i <= max_size:
            return segment // i
        i += 1
    return max_size

def window_step(max_size: int, segment: int) -> int:
    """
    Window length along one axis for a given maximum size and segment length.
    """
    if max_size <= 0:
        raise ValueError(f"Maximum window size must be positive, got {max_size}")
    if segment <= 0:
        raise ValueError(f"Segment size must be positive, got {segment}")

    if max_size >= segment * 2:
        return (max_size // segment) * segment
    elif max_size >= segment:
        return segment
    return best_factor(max_size, segment)

def plan_windows(cols: int, rows: int, col_size: int, row_size: int) -> List[GridBounds]:
    """
    Step over a cols x rows grid in row-major order with fixed window lengths.

    The last window on each axis is clipped to the grid edge.
    """
    if cols < 0 or rows < 0:
        raise ValueError(f"Grid dimensions must be non-negative, got {cols}x{rows}")
    if col_size <= 0 or row_size <= 0:
        raise ValueError(f"Window lengths must be positive, got {col_size}x{row_size}")

    return [
        GridBounds(
            col,
            row,
            min(col + col_size - 1, cols - 1),
            min(row + row_size - 1, rows - 1)
        )
        for row in range(0, rows, row_size)
        for col in range(0, cols, col_size)
    ]

def plan_grid(cols: int, rows: int, max_window_size: Optional[int] = None) -> List[GridBounds]:
    """
    Cover a grid with square windows of max_window_size, ignoring segment layout.

    Args:
        cols: Raster width in pixels.
        rows: Raster height in pixels.
        max_window_size: Window side length. None returns a single window
            spanning the whole grid.

    Returns:
        List[GridBounds]: Non-overlapping windows in row-major order.
    """
    if cols == 0 or rows == 0:
        return []
    if max_window_size is None:
        return [GridBounds.from_dimensions(cols, rows)]
    return plan_windows(cols, rows, max_window_size, max_window_size)

def plan_segment_windows(
    cols: int,
    rows: int,
    max_window_size: int,
    seg_cols: int,
    seg_rows: int
) -> List[GridBounds]:
    """
    Cover a grid with windows aligned to the raster's native segments.

    Args:
        cols: Raster width in pixels.
        rows: Raster height in pixels.
        max_window_size: Upper bound on the window side length.
        seg_cols: Native segment width.
        seg_rows: Native segment height.

    Returns:
        List[GridBounds]: Non-overlapping windows in row-major order.
    """
    if cols == 0 or rows == 0:
        return []

    col_size = window_step(max_window_size, seg_cols)
    row_size = window_step(max_window_size, seg_rows)
    log.debug(f"Planning {cols}x{rows} grid with {col_size}x{row_size} windows "
              f"(segments {seg_cols}x{seg_rows}, max {max_window_size})")

    return plan_windows(cols, rows, col_size, row_size)

def plan_geometry(
    cols: int,
    rows: int,
    max_size: int,
    extent: Extent,
    seg_cols: int,
    seg_rows: int,
    geometry: Any,
    options: RasterizeOptions = RasterizeOptions(),
    rasterizer: Callable = foreach_cell_by_geometry
) -> List[GridBounds]:
    """
    List the segment-aligned windows whose footprint meets a geometry.

    A coarse grid is laid over the raster where one coarse cell is exactly one
    window. The geometry is rasterized against that grid and every accepted
    cell becomes a window, clamped to the raster edges.

    Args:
        cols: Raster width in pixels.
        rows: Raster height in pixels.
        max_size: Upper bound on the window side length.
        extent: Map extent of the full raster.
        seg_cols: Native segment width.
        seg_rows: Native segment height.
        geometry: Restricting geometry in the raster's CRS.
        options: Scan conversion options.
        rasterizer: Callable with the signature of foreach_cell_by_geometry.

    Returns:
        List[GridBounds]: Windows in the order the rasterizer reports cells.
    """
    if cols == 0 or rows == 0:
        return []

    col_size = window_step(max_size, seg_cols)
    row_size = window_step(max_size, seg_rows)

    coarse_cols = math.ceil(cols / col_size)
    coarse_rows = math.ceil(rows / row_size)

    pixel_transform = from_bounds(*extent.as_tuple(), cols, rows)
    coarse_transform = pixel_transform * Affine.scale(col_size, row_size)

    full = GridBounds.from_dimensions(cols, rows)
    result: List[GridBounds] = []

    def _accept(col: int, row: int) -> None:
        cell = GridBounds(col * col_size, row * row_size, (col + 1) * col_size - 1, (row + 1) * row_size - 1)
        window = full.intersection(cell)
        if window is not None:
            result.append(window)

    rasterizer(geometry, (coarse_rows, coarse_cols), coarse_transform, options, _accept)

    log.debug(f"Geometry selected {len(result)} of {coarse_cols * coarse_rows} windows")
    return result
