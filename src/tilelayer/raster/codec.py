# src/tilelayer/raster/codec.py

"""
This module isolates raster decoding behind a small protocol.

The readers never parse raster bytes themselves. They ask a TileCodec for the
header (RasterInfo) and for pixel arrays, either for the whole raster or for a
single window. RasterioCodec is the GDAL-backed implementation.
"""

import io
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Protocol, Tuple, Union, runtime_checkable

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.transform import Affine
from rasterio.windows import bounds as window_bounds

from .grid import Extent, GridBounds

log = logging.getLogger(__name__)

__all__ = [
    "ByteSource",
    "RasterInfo",
    "TileCodec",
    "RasterioCodec",
    "open_source"
]

ByteSource = Union[str, Path, bytes, bytearray, memoryview, io.IOBase]

@dataclass(frozen=True)
class RasterInfo:
    """
    Header of a raster, decoded without reading any pixels.

    Args:
        cols: Raster width in pixels.
        rows: Raster height in pixels.
        seg_cols: Width of the native storage chunk (block or strip).
        seg_rows: Height of the native storage chunk.
        crs: Embedded coordinate reference system (None if absent).
        tags: Dataset-level header tags.
        transform: Pixel to map affine transform.
        count: Number of bands.
        dtype: Pixel data type name.
        nodata: Nodata value, if declared.
        source: Byte source the header was read from, reused for window decodes.
    """
    cols: int
    rows: int
    seg_cols: int
    seg_rows: int
    crs: Optional[CRS]
    tags: Dict[str, str]
    transform: Affine
    count: int = 1
    dtype: str = "float32"
    nodata: Optional[float] = None
    source: Any = field(default=None, compare=False, repr=False)

    @property
    def grid_bounds(self) -> GridBounds:
        return GridBounds.from_dimensions(self.cols, self.rows)

    @property
    def extent(self) -> Extent:
        return self.window_extent(self.grid_bounds)

    def window_extent(self, window: GridBounds) -> Extent:
        """Map footprint of a pixel window."""
        left, bottom, right, top = window_bounds(window.to_window(), self.transform)
        return Extent(min(left, right), min(bottom, top), max(left, right), max(bottom, top))

@runtime_checkable
class TileCodec(Protocol):
    """
    Decoder contract used by the raster readers.

    All pixel arrays are returned as (bands, rows, cols). The optional bands
    argument holds 1-based band indices.
    """
    def decode_header(self, source: ByteSource) -> RasterInfo: ...
    def decode_full(self, source: ByteSource, bands: Optional[List[int]] = None) -> np.ndarray: ...
    def decode_window(
        self, source: ByteSource, window: GridBounds, bands: Optional[List[int]] = None
    ) -> np.ndarray: ...
    def decode_window_from_info(
        self, info: RasterInfo, window: GridBounds, bands: Optional[List[int]] = None
    ) -> np.ndarray: ...

# Serializes seek/read pairs on caller-owned file objects shared between threads
_FILE_LOCK = threading.Lock()

class _RangeReader(io.RawIOBase):
    """
    Private read cursor over a shared buffer or file object.

    GDAL pulls byte ranges through it on demand. Every open dataset gets its own
    cursor, so concurrent decodes never move each other's position.

    Args:
        read_at: Callable (offset, size) -> bytes.
        length: Total size of the source in bytes.
    """
    def __init__(self, read_at: Callable[[int, int], bytes], length: int):
        super().__init__()
        self._read_at = read_at
        self._length = length
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self._length + offset
        else:
            raise ValueError(f"Unsupported whence value: {whence}")
        if pos < 0:
            raise ValueError(f"Negative seek position: {pos}")
        self._pos = pos
        return pos

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = self._length - self._pos
        if size <= 0 or self._pos >= self._length:
            return b""
        data = self._read_at(self._pos, size)
        self._pos += len(data)
        return data

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        buffer[:len(data)] = data
        return len(data)

def _buffer_ranges(source) -> Tuple[Callable[[int, int], bytes], int]:
    view = memoryview(source).cast("B")
    return (lambda offset, size: view[offset:offset + size].tobytes()), view.nbytes

def _file_ranges(fileobj) -> Tuple[Callable[[int, int], bytes], int]:
    def read_at(offset: int, size: int) -> bytes:
        with _FILE_LOCK:
            fileobj.seek(offset)
            return fileobj.read(size)

    with _FILE_LOCK:
        fileobj.seek(0, io.SEEK_END)
        length = fileobj.tell()
    return read_at, length

@contextmanager
def open_source(source: ByteSource) -> Generator[rasterio.DatasetReader, None, None]:
    """
    Open a byte source as a rasterio dataset and guarantee it is closed.

    Paths are opened in place. In-memory buffers and seekable file-like objects
    are served to GDAL through a private range reader, so a windowed read only
    fetches the bytes behind the header and the requested window, and several
    threads can decode windows from the same source at once.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        read_at, length = _buffer_ranges(source)
    elif hasattr(source, "read"):
        if not source.seekable():
            raise ValueError("Raster byte source must be seekable for windowed reads.")
        read_at, length = _file_ranges(source)
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Raster file not found: {path}")
        with rasterio.open(path) as src:
            yield src
        return

    def _opener(path, mode="rb", **kwargs):
        return _RangeReader(read_at, length)

    # Each dataset registers under a unique name so openers never collide across threads
    name = f"{uuid.uuid4().hex}.tif"
    with rasterio.open(name, opener=_opener) as src:
        yield src

def _segment_shape(src: rasterio.DatasetReader) -> tuple:
    """Native (seg_rows, seg_cols) of the first band, full width strips for untiled files."""
    if src.block_shapes:
        return src.block_shapes[0]
    return (1, src.width)

class RasterioCodec:
    """
    TileCodec backed by rasterio/GDAL.

    Every call opens its own dataset handle, so one codec can serve window
    decodes from many threads against the same source.
    """

    def decode_header(self, source: ByteSource) -> RasterInfo:
        with open_source(source) as src:
            seg_rows, seg_cols = _segment_shape(src)
            return RasterInfo(
                cols=src.width,
                rows=src.height,
                seg_cols=seg_cols,
                seg_rows=seg_rows,
                crs=src.crs,
                tags=dict(src.tags()),
                transform=src.transform,
                count=src.count,
                dtype=src.dtypes[0],
                nodata=src.nodata,
                source=source
            )

    def decode_full(self, source: ByteSource, bands: Optional[List[int]] = None) -> np.ndarray:
        with open_source(source) as src:
            return src.read(bands or list(src.indexes))

    def decode_window(
        self,
        source: ByteSource,
        window: GridBounds,
        bands: Optional[List[int]] = None
    ) -> np.ndarray:
        with open_source(source) as src:
            log.debug(f"Decoding window {window.to_dict()}")
            return src.read(bands or list(src.indexes), window=window.to_window())

    def decode_window_from_info(
        self,
        info: RasterInfo,
        window: GridBounds,
        bands: Optional[List[int]] = None
    ) -> np.ndarray:
        if info.source is None:
            raise ValueError("RasterInfo carries no byte source to decode windows from.")
        return self.decode_window(info.source, window, bands)
