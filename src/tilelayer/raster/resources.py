# src/tilelayer/raster/resources.py

"""
This module sizes read windows against the raster layout and system memory.

It checks two things before extraction:
- The internal segment structure of the raster (tiled or striped)
- How many pixels one worker can decode at once without exhausting RAM
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import psutil

from .codec import RasterInfo

log = logging.getLogger(__name__)

__all__ = [
    "SegmentStructure",
    "MemoryEstimate",
    "analyze_structure",
    "estimate_window_memory",
    "determine_window_size"
]

DEFAULT_SAFETY_FACTOR = 3.0
MIN_FREE_GB = 1.0
MIN_WINDOW_SIZE = 256

@dataclass(frozen=True)
class SegmentStructure:
    """
    Analysis of a raster's native storage layout.

    Args:
        is_tiled: True if segments are square-ish blocks rather than full-width strips.
        is_striped: True if segments span the full raster width or a single row.
        segment_shape: (seg_rows, seg_cols) in pixels.
    """
    is_tiled: bool
    is_striped: bool
    segment_shape: Tuple[int, int]

@dataclass(frozen=True)
class MemoryEstimate:
    """
    Memory needed to decode one window.

    Args:
        window_bytes: Bytes for one window including overhead.
        available_bytes: Memory currently available to the process.
        is_safe: True if every worker can hold one window with MIN_FREE_GB to spare.
        reason: Human readable summary.
    """
    window_bytes: int
    available_bytes: int
    is_safe: bool
    reason: str

def analyze_structure(info: RasterInfo) -> SegmentStructure:
    """Classify a raster as tiled or striped from its segment shape."""
    # Striped files have full width segments or single row segments
    is_striped = (info.seg_cols >= info.cols) or (info.seg_rows == 1)
    return SegmentStructure(
        is_tiled=not is_striped,
        is_striped=is_striped,
        segment_shape=(info.seg_rows, info.seg_cols)
    )

def _bytes_per_pixel(info: RasterInfo) -> int:
    return np.dtype(info.dtype).itemsize * max(info.count, 1)

def estimate_window_memory(
    info: RasterInfo,
    window_size: int,
    workers: int = 1,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Check that workers windows of window_size x window_size pixels fit in RAM.
    """
    raw_bytes = window_size * window_size * _bytes_per_pixel(info)
    window_bytes = int(raw_bytes * safety_factor)

    available = psutil.virtual_memory().available
    min_free_bytes = int(min_free_gb * (1024**3))
    is_safe = (window_bytes * workers + min_free_bytes) <= available

    reason = f"Req: {window_bytes * workers / 1e9:.3f}GB for {workers} window(s), Avail: {available / 1e9:.2f}GB"
    return MemoryEstimate(window_bytes, available, is_safe, reason)

def determine_window_size(
    info: RasterInfo,
    workers: int = 1,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB,
    max_window_size: Optional[int] = None
) -> int:
    """
    Largest square window side that every worker can decode concurrently.

    The result is rounded down to a whole number of segments for tiled rasters,
    never drops below one segment (or MIN_WINDOW_SIZE for striped rasters) and
    never exceeds the raster's longer side or max_window_size.

    Args:
        info: Raster header.
        workers: Number of windows decoded at the same time.
        safety_factor: Overhead multiplier on the raw pixel bytes.
        min_free_gb: Memory to keep free after allocation.
        max_window_size: Optional hard cap.

    Returns:
        int: Window side length in pixels.
    """
    available = psutil.virtual_memory().available - int(min_free_gb * (1024**3))
    per_worker = max(available, 0) / max(workers, 1)
    side = int(math.sqrt(per_worker / (_bytes_per_pixel(info) * safety_factor)))

    structure = analyze_structure(info)
    if structure.is_tiled:
        seg = max(info.seg_cols, info.seg_rows)
        side = max(seg, (side // seg) * seg)
    else:
        side = max(side, MIN_WINDOW_SIZE)

    side = min(side, max(info.cols, info.rows))
    if max_window_size is not None:
        side = min(side, max_window_size)

    log.debug(f"Window size {side} chosen for {workers} worker(s) "
              f"({'tiled' if structure.is_tiled else 'striped'} raster)")
    return max(side, 1)
