# tests/conftest.py

import pytest
import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from tilelayer.store import AttributeStore, StoreClient, TileBackend

@pytest.fixture
def mock_raster_factory(tmp_path):
    """
    Fixture: Returns a function that writes a synthetic GeoTIFF in a temp dir.

    Pixel values encode their position (row * width + col, plus 1000 per band)
    so windowed reads can be checked against slices of the full array.
    """
    def _create(
        name="mock.tif",
        width=10,
        height=10,
        count=1,
        dtype="float32",
        crs="EPSG:32619",
        tiled=False,
        blocksize=16,
        timestamp=None,
        nodata=None
    ):
        path = tmp_path / name
        transform = Affine.translation(0, height) * Affine.scale(1, -1)

        grid = np.arange(width * height, dtype="float64").reshape(height, width)
        data = np.stack([grid + 1000 * b for b in range(count)]).astype(dtype)

        profile = {
            'driver': 'GTiff',
            'height': height,
            'width': width,
            'count': count,
            'dtype': dtype,
            'crs': CRS.from_string(crs) if crs else None,
            'transform': transform
        }
        if tiled:
            profile.update(tiled=True, blockxsize=blocksize, blockysize=blocksize)
        if nodata is not None:
            profile['nodata'] = nodata

        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(data)
            if timestamp is not None:
                dst.update_tags(TIFFTAG_DATETIME=timestamp)

        return str(path)

    return _create

@pytest.fixture
def store():
    """
    Fixture: A fresh in-memory layer store per test, torn down explicitly.

    Yields (attribute_store, backend).
    """
    client = StoreClient("sqlite://")
    try:
        assert client.initialize_database()
        yield AttributeStore(client), TileBackend(client, scan_page_size=3)
    finally:
        client.dispose()
