# tests/unit/test_attributes.py

import pytest

from tilelayer.exceptions import AlreadyExistsError, LayerNotFoundError
from tilelayer.index import ZSpatialKeyIndex
from tilelayer.keys import KeyBounds, SpatialKey
from tilelayer.raster import Extent, LayoutDefinition
from tilelayer.store import LayerId, LayerMetadata

def _metadata(max_col=3):
    bounds = KeyBounds(SpatialKey(0, 0), SpatialKey(max_col, 3))
    return LayerMetadata(
        key_type="spatial",
        value_type="singleband",
        key_index=ZSpatialKeyIndex(bounds).to_dict(),
        key_bounds=bounds,
        layout=LayoutDefinition(Extent(0, 0, 4, 4), 2, 2, 4, 4),
        crs="EPSG:32619"
    )

def test_register_and_lookup(store):
    attributes, _ = store
    attributes.register("ndvi", _metadata())

    metadata = attributes.lookup("ndvi")
    assert metadata == _metadata()
    assert metadata.index == ZSpatialKeyIndex(KeyBounds(SpatialKey(0, 0), SpatialKey(3, 3)))

def test_register_twice_requires_overwrite(store):
    attributes, _ = store
    attributes.register("ndvi", _metadata())

    with pytest.raises(AlreadyExistsError):
        attributes.register("ndvi", _metadata(5))

    attributes.register("ndvi", _metadata(5), overwrite=True)
    assert attributes.lookup("ndvi").key_bounds.max_key == SpatialKey(5, 3)

def test_lookup_missing_layer(store):
    attributes, _ = store
    with pytest.raises(LayerNotFoundError):
        attributes.lookup("missing")

def test_zoom_levels_are_distinct_layers(store):
    attributes, _ = store
    attributes.register(LayerId("ndvi", 0), _metadata())
    attributes.register(LayerId("ndvi", 1), _metadata(1))
    attributes.register("alpha", _metadata())

    assert attributes.list() == [LayerId("alpha", 0), LayerId("ndvi", 0), LayerId("ndvi", 1)]
    assert attributes.layer_exists(LayerId("ndvi", 1))
    assert not attributes.layer_exists(LayerId("ndvi", 2))

def test_delete_is_idempotent(store):
    attributes, _ = store
    attributes.register("ndvi", _metadata())
    attributes.write_attribute("ndvi", "histogram", {"bins": [1, 2, 3]})

    attributes.delete("ndvi")
    attributes.delete("ndvi")

    assert not attributes.layer_exists("ndvi")
    assert attributes.available_attributes("ndvi") == []

def test_named_attributes(store):
    attributes, _ = store
    attributes.register("ndvi", _metadata())
    attributes.write_attribute("ndvi", "histogram", {"bins": [1, 2, 3]})
    attributes.write_attribute("ndvi", "histogram", {"bins": [4]})

    assert attributes.read_attribute("ndvi", "histogram") == {"bins": [4]}
    assert attributes.available_attributes("ndvi") == ["histogram", "metadata"]

def test_update_requires_existing_layer(store):
    attributes, _ = store
    with pytest.raises(LayerNotFoundError):
        attributes.update("ndvi", _metadata())
