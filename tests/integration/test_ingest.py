# tests/integration/test_ingest.py

import numpy as np
import pytest

from tilelayer.exceptions import LayerExistsError
from tilelayer.index import RowMajorKeyIndexMethod, ZSpaceTimeKeyIndex
from tilelayer.ingest import ingest_raster, pad_tile
from tilelayer.keys import KeyBounds, SpaceTimeKey, SpatialKey
from tilelayer.store import LayerReader, LayerReindexer, ValueReader, WriteMode
from helpers import as_mapping

def test_ingest_singleband_raster(mock_raster_factory, store):
    """
    End to end: a 10x10 GeoTIFF cut into 4x4 tiles, stored, read back by bounding box.
    """
    attributes, backend = store
    path = mock_raster_factory("ingest.tif", width=10, height=10, nodata=-1)

    report = ingest_raster(path, "dem", attributes, backend, tile_size=4, batch_size=4)

    assert report.tiles_written == 9
    assert (report.layout.layout_cols, report.layout.layout_rows) == (3, 3)

    metadata = attributes.lookup("dem")
    assert metadata.crs == "EPSG:32619"
    assert metadata.layout == report.layout
    assert metadata.key_bounds == KeyBounds(SpatialKey(0, 0), SpatialKey(2, 2))

    records = as_mapping(LayerReader(attributes, backend).read("dem"))
    assert len(records) == 9
    assert all(t.shape == (4, 4) for t in records.values())

    full = np.arange(100, dtype="float32").reshape(10, 10)
    assert np.array_equal(records[SpatialKey(1, 0)], full[0:4, 4:8])

    corner = records[SpatialKey(2, 2)]
    assert np.array_equal(corner[:2, :2], full[8:10, 8:10])
    assert (corner[2:, :] == -1).all() and (corner[:, 2:] == -1).all()

def test_ingest_temporal_multiband(mock_raster_factory, store):
    attributes, backend = store
    path = mock_raster_factory("series.tif", width=8, height=8, count=3, timestamp="2022:03:01 09:00:00")

    ingest_raster(path, "series", attributes, backend, tile_size=4, shape="temporal_multiband")

    metadata = attributes.lookup("series")
    assert metadata.key_type == "spacetime"
    assert metadata.value_type == "multiband"
    assert isinstance(metadata.index, ZSpaceTimeKeyIndex)

    records = LayerReader(attributes, backend).read("series")
    assert len(records) == 4
    key, value = records[0]
    assert isinstance(key, SpaceTimeKey)
    assert key.time.isoformat() == "2022-03-01T09:00:00+00:00"
    assert value.shape == (3, 4, 4)

def test_ingest_twice_then_reindex(mock_raster_factory, store):
    attributes, backend = store
    path = mock_raster_factory("twice.tif", width=12, height=8)

    ingest_raster(path, "dem", attributes, backend, tile_size=4)
    with pytest.raises(LayerExistsError):
        ingest_raster(path, "dem", attributes, backend, tile_size=4)
    ingest_raster(path, "dem", attributes, backend, tile_size=4, mode=WriteMode.OVERWRITE, workers=2)

    before = as_mapping(LayerReader(attributes, backend).read("dem"))
    LayerReindexer(attributes, backend).reindex("dem", RowMajorKeyIndexMethod())
    after = as_mapping(LayerReader(attributes, backend).read("dem"))

    assert set(before) == set(after)
    tile = ValueReader(attributes, backend).read("dem", SpatialKey(2, 1))
    assert np.array_equal(tile, before[SpatialKey(2, 1)])

def test_pad_tile():
    padded = pad_tile(np.ones((2, 3, 1)), tile_cols=4, tile_rows=5, fill_value=9)
    assert padded.shape == (2, 5, 4)
    assert padded[0, 0, 0] == 1 and padded[1, 4, 3] == 9

    with pytest.raises(ValueError):
        pad_tile(np.ones((6, 6)), 4, 4)
