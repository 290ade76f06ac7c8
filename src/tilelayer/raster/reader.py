# src/tilelayer/raster/reader.py

"""
This module reads rasters fully or as pixel windows and keys each result.

There is one reader per result shape: single-band or multi-band tiles, keyed
by a ProjectedExtent or by a TemporalProjectedExtent. Callers pick the reader
explicitly (directly or through get_reader) and hand it to the extraction
pipeline.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np

from tilelayer.exceptions import InvalidWindowError
from .codec import ByteSource, RasterInfo, RasterioCodec, TileCodec
from .grid import Extent, GridBounds, ProjectedExtent, TemporalProjectedExtent
from .options import ReadOptions

log = logging.getLogger(__name__)

__all__ = [
    "ResultShape",
    "RasterReader",
    "SinglebandReader",
    "MultibandReader",
    "TemporalSinglebandReader",
    "TemporalMultibandReader",
    "get_reader"
]

RasterKey = Union[ProjectedExtent, TemporalProjectedExtent]

class ResultShape(Enum):
    """Shape of the (key, tile) pairs a reader produces.

    Options:
        SINGLEBAND: 2-D tile keyed by ProjectedExtent.
        MULTIBAND: 3-D tile keyed by ProjectedExtent.
        TEMPORAL_SINGLEBAND: 2-D tile keyed by TemporalProjectedExtent.
        TEMPORAL_MULTIBAND: 3-D tile keyed by TemporalProjectedExtent.
    """
    SINGLEBAND = "singleband"
    MULTIBAND = "multiband"
    TEMPORAL_SINGLEBAND = "temporal_singleband"
    TEMPORAL_MULTIBAND = "temporal_multiband"

def _coerce_window(window) -> GridBounds:
    if isinstance(window, GridBounds):
        return window
    try:
        return GridBounds(*window)
    except TypeError as e:
        raise InvalidWindowError(f"Cannot interpret {window!r} as a pixel window") from e

class RasterReader(ABC):
    """
    Reads a raster either whole or window by window.

    Subclasses fix two things: which bands are decoded and how they are shaped
    (_bands, _shape_tile) and how the key is built (_make_key).

    Args:
        codec: TileCodec used for all decoding. Defaults to RasterioCodec.
    """
    shape: ResultShape

    def __init__(self, codec: Optional[TileCodec] = None):
        self.codec = codec or RasterioCodec()

    @property
    def _bands(self) -> Optional[List[int]]:
        return None

    @abstractmethod
    def _shape_tile(self, data: np.ndarray) -> np.ndarray:
        ...

    @abstractmethod
    def _make_key(
        self,
        extent: Extent,
        info: RasterInfo,
        options: ReadOptions,
        time: Optional[datetime]
    ) -> RasterKey:
        ...

    def _time(self, info: RasterInfo, options: ReadOptions) -> Optional[datetime]:
        return None

    def read_fully(self, source: ByteSource, options: ReadOptions = ReadOptions()) -> Tuple[RasterKey, np.ndarray]:
        """
        Decode the whole raster.

        Args:
            source: Path, buffer or seekable file-like holding the raster.
            options: ReadOptions (CRS override, timestamp tag and pattern).

        Returns:
            Tuple[key, tile]: The key describes the full raster footprint.
        """
        info = self.codec.decode_header(source)
        time = self._time(info, options)
        data = self.codec.decode_full(source, self._bands)
        return self._make_key(info.extent, info, options, time), self._shape_tile(data)

    def read_window(
        self,
        source: ByteSource,
        window: GridBounds,
        options: ReadOptions = ReadOptions()
    ) -> Tuple[RasterKey, np.ndarray]:
        """
        Decode a single pixel window.

        Only the bytes backing the window are decoded, so the source must allow
        random access.

        Raises:
            InvalidWindowError: If the window is malformed or not inside the raster.
        """
        window = _coerce_window(window)
        info = self.codec.decode_header(source)

        if not info.grid_bounds.contains(window):
            raise InvalidWindowError(
                f"Window {window.to_dict()} lies outside the {info.cols}x{info.rows} raster"
            )

        time = self._time(info, options)
        data = self.codec.decode_window(source, window, self._bands)
        return self._make_key(info.window_extent(window), info, options, time), self._shape_tile(data)

    def read_windows(
        self,
        windows: Iterable[GridBounds],
        info: RasterInfo,
        options: ReadOptions = ReadOptions()
    ) -> Iterator[Tuple[RasterKey, np.ndarray]]:
        """
        Lazily decode a list of windows against an already decoded header.

        Windows outside the raster grid are skipped. Each pulled element decodes
        exactly one window; the sequence cannot be resumed once abandoned.

        Args:
            windows: Pixel windows, usually from the window planner.
            info: Header returned by codec.decode_header.
            options: ReadOptions.

        Yields:
            Tuple[key, tile]: One pair per retained window, in input order.
        """
        grid_bounds = info.grid_bounds
        time = self._time(info, options)

        for window in windows:
            window = _coerce_window(window)
            if not grid_bounds.contains(window):
                log.debug(f"Dropping window {window.to_dict()} outside raster grid")
                continue

            data = self.codec.decode_window_from_info(info, window, self._bands)
            yield self._make_key(info.window_extent(window), info, options, time), self._shape_tile(data)

class _SinglebandMixin:
    @property
    def _bands(self) -> Optional[List[int]]:
        return [1]

    def _shape_tile(self, data: np.ndarray) -> np.ndarray:
        return data[0] if data.ndim == 3 else data

class _MultibandMixin:
    def _shape_tile(self, data: np.ndarray) -> np.ndarray:
        return data[np.newaxis, :, :] if data.ndim == 2 else data

class _SpatialMixin:
    def _make_key(self, extent, info, options, time):
        return ProjectedExtent(extent, options.resolve_crs(info.crs))

class _TemporalMixin:
    def _time(self, info: RasterInfo, options: ReadOptions) -> Optional[datetime]:
        return options.parse_time(info.tags)

    def _make_key(self, extent, info, options, time):
        return TemporalProjectedExtent(extent, options.resolve_crs(info.crs), time)

class SinglebandReader(_SinglebandMixin, _SpatialMixin, RasterReader):
    """First band as a 2-D tile, keyed by ProjectedExtent."""
    shape = ResultShape.SINGLEBAND

class MultibandReader(_MultibandMixin, _SpatialMixin, RasterReader):
    """All bands as a (bands, rows, cols) tile, keyed by ProjectedExtent."""
    shape = ResultShape.MULTIBAND

class TemporalSinglebandReader(_SinglebandMixin, _TemporalMixin, RasterReader):
    """First band as a 2-D tile, keyed by TemporalProjectedExtent."""
    shape = ResultShape.TEMPORAL_SINGLEBAND

class TemporalMultibandReader(_MultibandMixin, _TemporalMixin, RasterReader):
    """All bands as a (bands, rows, cols) tile, keyed by TemporalProjectedExtent."""
    shape = ResultShape.TEMPORAL_MULTIBAND

_READERS = {
    ResultShape.SINGLEBAND: SinglebandReader,
    ResultShape.MULTIBAND: MultibandReader,
    ResultShape.TEMPORAL_SINGLEBAND: TemporalSinglebandReader,
    ResultShape.TEMPORAL_MULTIBAND: TemporalMultibandReader,
}

def get_reader(shape: Union[ResultShape, str], codec: Optional[TileCodec] = None) -> RasterReader:
    """
    Build the reader for a result shape.

    Args:
        shape: ResultShape or its string value ('singleband', 'temporal_multiband', ...).
        codec: Optional TileCodec override.
    """
    try:
        shape = ResultShape(shape)
    except ValueError:
        valid = [s.value for s in ResultShape]
        raise ValueError(f"Invalid result shape '{shape}'. Must be one of: {valid}")
    return _READERS[shape](codec)
