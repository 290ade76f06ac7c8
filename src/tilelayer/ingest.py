# src/tilelayer/ingest.py

"""
This module turns a raster into a keyed tile layer.

The raster is cut on a LayoutDefinition anchored at its upper-left corner, each
layout tile is extracted as one pixel window, and the tiles are written to the
store under SpatialKeys, or SpaceTimeKeys when a temporal reader is used.
"""

import logging
from dataclasses import dataclass
from itertools import islice
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from tilelayer.index import KeyIndex, KeyIndexMethod, ZCurveKeyIndexMethod, resolve_key_index
from tilelayer.keys import Key, KeyBounds, SpaceTimeKey
from tilelayer.raster.codec import ByteSource, RasterInfo, TileCodec
from tilelayer.raster.engine import ExtractConfig, extract_windows
from tilelayer.raster.grid import TemporalProjectedExtent
from tilelayer.raster.layout import LayoutDefinition
from tilelayer.raster.options import ReadOptions
from tilelayer.raster.reader import ResultShape, get_reader
from tilelayer.store.attributes import AttributeStore
from tilelayer.store.backend import TileBackend
from tilelayer.store.layer import LayerUpdater, LayerWriter, WriteMode
from tilelayer.store.metadata import LayerId, as_layer_id

log = logging.getLogger(__name__)

__all__ = [
    "IngestReport",
    "pad_tile",
    "ingest_raster"
]

@dataclass
class IngestReport:
    layer_id: LayerId
    layout: LayoutDefinition
    tiles_written: int = 0

def pad_tile(tile: np.ndarray, tile_cols: int, tile_rows: int, fill_value: float = 0) -> np.ndarray:
    """Pad an edge tile on the right and bottom up to the layout tile size."""
    pad_rows = tile_rows - tile.shape[-2]
    pad_cols = tile_cols - tile.shape[-1]
    if pad_rows == 0 and pad_cols == 0:
        return tile
    if pad_rows < 0 or pad_cols < 0:
        raise ValueError(f"Tile of shape {tile.shape} exceeds layout tile size {tile_cols}x{tile_rows}")

    padding = [(0, 0)] * (tile.ndim - 2) + [(0, pad_rows), (0, pad_cols)]
    return np.pad(tile, padding, mode="constant", constant_values=fill_value)

def _layout_bounds(layout: LayoutDefinition, shape: ResultShape, info: RasterInfo, options: ReadOptions) -> KeyBounds:
    bounds = layout.key_bounds
    if shape in (ResultShape.TEMPORAL_SINGLEBAND, ResultShape.TEMPORAL_MULTIBAND):
        time = options.parse_time(info.tags)
        return KeyBounds(
            SpaceTimeKey.from_datetime(bounds.min_key.col, bounds.min_key.row, time),
            SpaceTimeKey.from_datetime(bounds.max_key.col, bounds.max_key.row, time)
        )
    return bounds

def _keyed_tiles(
    source: ByteSource,
    layout: LayoutDefinition,
    reader,
    config: ExtractConfig,
    options: ReadOptions,
    fill_value: float
) -> Iterator[Tuple[Key, np.ndarray]]:
    for raster_key, tile in extract_windows(source, reader, config, options):
        spatial_key = layout.key_for_extent(raster_key.extent)
        if isinstance(raster_key, TemporalProjectedExtent):
            key = SpaceTimeKey.from_datetime(spatial_key.col, spatial_key.row, raster_key.time)
        else:
            key = spatial_key
        yield key, pad_tile(tile, layout.tile_cols, layout.tile_rows, fill_value)

def ingest_raster(
    source: ByteSource,
    layer: Union[LayerId, str],
    attribute_store: AttributeStore,
    backend: TileBackend,
    tile_size: int = 256,
    shape: Union[ResultShape, str] = ResultShape.SINGLEBAND,
    key_index: Optional[Union[KeyIndex, KeyIndexMethod, Dict[str, Any]]] = None,
    mode: WriteMode = WriteMode.CREATE,
    options: ReadOptions = ReadOptions(),
    workers: int = 1,
    batch_size: int = 64,
    codec: Optional[TileCodec] = None
) -> IngestReport:
    """
    Cuts a raster into layout tiles and writes them as a layer.

    Tiles are written in batches of batch_size, so at most one batch of decoded
    tiles is held in memory. Edge tiles are padded with the raster's nodata value,
    or 0 when none is declared.

    Args:
        source (ByteSource): Raster path, buffer or seekable file-like.
        layer (Union[LayerId, str]): Target layer.
        attribute_store (AttributeStore): Metadata registry.
        backend (TileBackend): Tile storage.
        tile_size (int): Side of a layout tile in pixels.
        shape (Union[ResultShape, str]): Result shape; temporal shapes produce SpaceTimeKeys.
        key_index: Index, index method or index config. Defaults to a Z-order curve,
            binned by day for space-time layers.
        mode (WriteMode): Behaviour when the layer already exists.
        options (ReadOptions): CRS override and timestamp parsing.
        workers (int): Windows decoded concurrently.
        batch_size (int): Tiles per store write.
        codec (Optional[TileCodec]): Decoder override.

    Returns:
        IngestReport: Layer, layout and number of tiles written.
    """
    if tile_size <= 0:
        raise ValueError(f"tile_size must be positive, got {tile_size}")

    layer_id = as_layer_id(layer)
    shape = ResultShape(shape)
    reader = get_reader(shape, codec)

    info = reader.codec.decode_header(source)
    layout = LayoutDefinition.from_raster(info, tile_size)
    index = resolve_key_index(
        key_index if key_index is not None else ZCurveKeyIndexMethod.by_day(),
        _layout_bounds(layout, shape, info, options)
    )
    crs = options.resolve_crs(info.crs)
    fill_value = info.nodata if info.nodata is not None else 0

    config = ExtractConfig(max_window_size=tile_size, align_to_segments=False, workers=workers)
    tiles = _keyed_tiles(source, layout, reader, config, options, fill_value)

    writer = LayerWriter(attribute_store, backend)
    updater = LayerUpdater(attribute_store, backend)
    report = IngestReport(layer_id, layout)

    log.info(f"Ingesting {info.cols}x{info.rows} raster into layer {layer_id} "
             f"as {layout.layout_cols}x{layout.layout_rows} tiles of {tile_size}px")

    while True:
        batch: List[Tuple[Key, np.ndarray]] = list(islice(tiles, batch_size))
        if not batch:
            break
        if report.tiles_written == 0:
            writer.write(
                layer_id, batch, index, mode=mode, layout=layout,
                crs=crs.to_string() if crs is not None else None
            )
        else:
            updater.update(layer_id, batch)
        report.tiles_written += len(batch)

    log.info(f"Ingested {report.tiles_written} tiles into layer {layer_id}")
    return report
