# src/tilelayer/raster/engine.py

"""
This module drives windowed extraction: plan windows for a raster, then decode
them one by one (or a few at a time on worker threads) with a chosen reader.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Generator, List, Optional, Tuple

import numpy as np

from .codec import ByteSource, RasterInfo
from .grid import GridBounds
from .options import ReadOptions
from .rasterize import RasterizeOptions
from .reader import RasterKey, RasterReader
from .resources import determine_window_size
from .windows import plan_geometry, plan_grid, plan_segment_windows

log = logging.getLogger(__name__)

__all__ = [
    "ExtractConfig",
    "plan_extraction",
    "extract_windows"
]

class ExtractConfig:
    """Configuration object for windowed extraction.

    Args:
        max_window_size: Upper bound on window side length in pixels. None reads
            the raster as one window unless auto_size is set.
        align_to_segments: Keep window edges on native segment boundaries. Default=True.
        geometry: Optional shapely geometry (raster CRS) restricting the windows.
        rasterize_options: Scan conversion options used with geometry.
        workers: Number of windows decoded concurrently. Default=1.
        auto_size: Derive max_window_size from available memory when it is None.
    """
    def __init__(
        self,
        max_window_size: Optional[int] = None,
        align_to_segments: bool = True,
        geometry: Optional[Any] = None,
        rasterize_options: RasterizeOptions = RasterizeOptions(),
        workers: int = 1,
        auto_size: bool = False
    ):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.max_window_size = max_window_size
        self.align_to_segments = align_to_segments
        self.geometry = geometry
        self.rasterize_options = rasterize_options
        self.workers = workers
        self.auto_size = auto_size

def plan_extraction(info: RasterInfo, config: ExtractConfig) -> List[GridBounds]:
    """
    Choose the windows to read from a raster according to config.

    Args:
        info: Raster header.
        config: ExtractConfig.

    Returns:
        List[GridBounds]: Windows to decode.
    """
    size = config.max_window_size
    if size is None and config.auto_size:
        size = determine_window_size(info, workers=config.workers)

    if config.geometry is not None:
        return plan_geometry(
            info.cols, info.rows,
            size if size is not None else max(info.cols, info.rows),
            info.extent, info.seg_cols, info.seg_rows,
            config.geometry, config.rasterize_options
        )

    if size is None:
        return plan_grid(info.cols, info.rows)
    if config.align_to_segments:
        return plan_segment_windows(info.cols, info.rows, size, info.seg_cols, info.seg_rows)
    return plan_grid(info.cols, info.rows, size)

def _read_single(
    reader: RasterReader,
    window: GridBounds,
    info: RasterInfo,
    options: ReadOptions
) -> Optional[Tuple[RasterKey, np.ndarray]]:
    return next(reader.read_windows([window], info, options), None)

def extract_windows(
    source: ByteSource,
    reader: RasterReader,
    config: Optional[ExtractConfig] = None,
    options: ReadOptions = ReadOptions()
) -> Generator[Tuple[RasterKey, np.ndarray], None, None]:
    """
    Plan and decode the windows of a raster.

    With one worker this is reader.read_windows. With several, windows are
    decoded in batches of config.workers on a thread pool; results still come
    out in plan order and at most one batch is held in memory.

    Args:
        source: Raster path, buffer or seekable file-like object.
        reader: RasterReader for the desired result shape.
        config: ExtractConfig. Defaults to a single full-raster window.
        options: ReadOptions forwarded to the reader.

    Yields:
        Tuple[key, tile] per window.
    """
    config = config or ExtractConfig()
    info = reader.codec.decode_header(source)
    windows = plan_extraction(info, config)

    log.info(f"Extracting {len(windows)} window(s) from {info.cols}x{info.rows} raster "
             f"with {type(reader).__name__} on {config.workers} worker(s)")

    if config.workers == 1:
        yield from reader.read_windows(windows, info, options)
        return

    with ThreadPoolExecutor(max_workers=config.workers) as pool:
        for start in range(0, len(windows), config.workers):
            batch = windows[start:start + config.workers]
            futures = [pool.submit(_read_single, reader, w, info, options) for w in batch]
            for future in futures:
                result = future.result()
                if result is not None:
                    yield result
