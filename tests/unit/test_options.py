# tests/unit/test_options.py

from datetime import datetime, timezone

import pytest
from rasterio.crs import CRS

from tilelayer.exceptions import MissingTagError, ParseError, TileLayerError
from tilelayer.raster import ReadOptions

def test_parse_time_default_tag_is_utc():
    options = ReadOptions()
    parsed = options.parse_time({"TIFFTAG_DATETIME": "2021:06:15 10:30:00"})
    assert parsed == datetime(2021, 6, 15, 10, 30, tzinfo=timezone.utc)

def test_parse_time_custom_tag_and_offset():
    options = ReadOptions(time_tag="ACQ", time_format="%Y-%m-%dT%H:%M:%S%z")
    parsed = options.parse_time({"ACQ": "2020-01-01T12:00:00+0200"})
    assert parsed.astimezone(timezone.utc) == datetime(2020, 1, 1, 10, tzinfo=timezone.utc)

def test_missing_tag():
    with pytest.raises(MissingTagError) as excinfo:
        ReadOptions().parse_time({"OTHER": "x"})
    assert "TIFFTAG_DATETIME" in str(excinfo.value)
    assert isinstance(excinfo.value, TileLayerError)

def test_malformed_timestamp():
    with pytest.raises(ParseError) as excinfo:
        ReadOptions().parse_time({"TIFFTAG_DATETIME": "yesterday"})
    assert excinfo.value.value == "yesterday"

def test_crs_override():
    override = CRS.from_epsg(4326)
    raster_crs = CRS.from_epsg(32619)
    assert ReadOptions(crs=override).resolve_crs(raster_crs) == override
    assert ReadOptions().resolve_crs(raster_crs) == raster_crs

def test_options_are_immutable():
    options = ReadOptions()
    with pytest.raises(AttributeError):
        options.time_tag = "X"
