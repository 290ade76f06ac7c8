# tests/unit/test_index.py

from itertools import product

import pytest

from tilelayer.index import (
    MILLIS_PER_DAY,
    RowMajorKeyIndexMethod,
    RowMajorSpatialKeyIndex,
    ZCurveKeyIndexMethod,
    ZSpaceTimeKeyIndex,
    ZSpatialKeyIndex,
    interleave,
    key_index_from_dict,
    resolve_key_index,
    z_ranges
)
from tilelayer.keys import KeyBounds, SpaceTimeKey, SpatialKey

SPATIAL_BOUNDS = KeyBounds(SpatialKey(0, 0), SpatialKey(15, 15))

def _in_ranges(value, ranges):
    return any(lo <= value <= hi for lo, hi in ranges)

def test_interleave_small_values():
    assert interleave((0, 0), 4) == 0
    assert interleave((1, 0), 4) == 1
    assert interleave((0, 1), 4) == 2
    assert interleave((3, 3), 4) == 15

@pytest.mark.parametrize("query", [
    KeyBounds(SpatialKey(0, 0), SpatialKey(15, 15)),
    KeyBounds(SpatialKey(3, 5), SpatialKey(9, 6)),
    KeyBounds(SpatialKey(7, 7), SpatialKey(8, 8)),
    KeyBounds(SpatialKey(4, 0), SpatialKey(4, 12)),
])
@pytest.mark.parametrize("index", [ZSpatialKeyIndex(SPATIAL_BOUNDS), RowMajorSpatialKeyIndex(SPATIAL_BOUNDS)])
def test_spatial_ranges_cover_exactly_the_query(index, query):
    """Every key in the box falls in a range; no key outside the box does."""
    ranges = index.index_ranges(query)

    for col, row in product(range(16), range(16)):
        key = SpatialKey(col, row)
        assert _in_ranges(index.to_index(key), ranges) == query.includes(key)

def test_z_ranges_are_merged_and_sorted():
    ranges = z_ranges((0, 0), (3, 3))
    assert ranges == [(0, 15)]

    ranges = z_ranges((1, 1), (6, 2))
    assert ranges == sorted(ranges)
    assert all(a[1] + 1 < b[0] for a, b in zip(ranges, ranges[1:]))

def test_row_major_is_dense():
    index = RowMajorSpatialKeyIndex(KeyBounds(SpatialKey(2, 3), SpatialKey(4, 5)))
    assert [index.to_index(SpatialKey(c, r)) for r in range(3, 6) for c in range(2, 5)] == list(range(9))

def test_row_major_rejects_keys_outside_bounds():
    index = RowMajorSpatialKeyIndex(SPATIAL_BOUNDS)
    with pytest.raises(ValueError):
        index.to_index(SpatialKey(16, 0))
    assert not index.covers(KeyBounds(SpatialKey(0, 0), SpatialKey(16, 1)))
    assert index.index_ranges(KeyBounds(SpatialKey(20, 20), SpatialKey(30, 30))) == []

def test_z_spatial_is_unbounded():
    index = ZSpatialKeyIndex(SPATIAL_BOUNDS)
    assert index.covers(KeyBounds(SpatialKey(0, 0), SpatialKey(100000, 5)))
    with pytest.raises(ValueError):
        index.to_index(SpatialKey(-1, 0))

def test_spacetime_index_bins_time():
    index = ZSpaceTimeKeyIndex(temporal_resolution=MILLIS_PER_DAY)
    morning = SpaceTimeKey(1, 2, 5 * MILLIS_PER_DAY + 1000)
    evening = SpaceTimeKey(1, 2, 5 * MILLIS_PER_DAY + 20 * 3600 * 1000)
    next_day = SpaceTimeKey(1, 2, 6 * MILLIS_PER_DAY)

    assert index.to_index(morning) == index.to_index(evening)
    assert index.to_index(morning) != index.to_index(next_day)

def test_spacetime_ranges_cover_query():
    index = ZSpaceTimeKeyIndex(temporal_resolution=1)
    query = KeyBounds(SpaceTimeKey(1, 1, 2), SpaceTimeKey(3, 2, 5))
    ranges = index.index_ranges(query)

    for col, row, t in product(range(5), range(4), range(8)):
        key = SpaceTimeKey(col, row, t)
        assert _in_ranges(index.to_index(key), ranges) == query.includes(key)

def test_index_config_roundtrip():
    spacetime_bounds = KeyBounds(SpaceTimeKey(0, 0, 0), SpaceTimeKey(3, 3, MILLIS_PER_DAY * 10))
    for index in (
        RowMajorSpatialKeyIndex(SPATIAL_BOUNDS),
        ZSpatialKeyIndex(),
        ZSpaceTimeKeyIndex(spacetime_bounds, 3600 * 1000),
    ):
        config = index.to_dict()
        assert set(config) == {"type", "properties"}
        assert key_index_from_dict(config) == index

def test_unknown_index_type():
    with pytest.raises(ValueError):
        key_index_from_dict({"type": "hilbert", "properties": {}})

def test_key_index_methods():
    assert isinstance(RowMajorKeyIndexMethod().create_index(SPATIAL_BOUNDS), RowMajorSpatialKeyIndex)
    assert isinstance(ZCurveKeyIndexMethod().create_index(SPATIAL_BOUNDS), ZSpatialKeyIndex)

    spacetime_bounds = KeyBounds(SpaceTimeKey(0, 0, 0), SpaceTimeKey(1, 1, 1))
    index = ZCurveKeyIndexMethod.by_days(7).create_index(spacetime_bounds)
    assert index.temporal_resolution == 7 * MILLIS_PER_DAY

    with pytest.raises(ValueError):
        ZCurveKeyIndexMethod().create_index(spacetime_bounds)
    with pytest.raises(ValueError):
        RowMajorKeyIndexMethod().create_index(spacetime_bounds)

def test_resolve_key_index():
    index = ZSpatialKeyIndex()
    assert resolve_key_index(index, SPATIAL_BOUNDS) is index
    assert resolve_key_index(index.to_dict(), SPATIAL_BOUNDS) == index
    assert resolve_key_index(ZCurveKeyIndexMethod.by_day(), SPATIAL_BOUNDS).key_bounds == SPATIAL_BOUNDS
    with pytest.raises(TypeError):
        resolve_key_index("zorder", SPATIAL_BOUNDS)
