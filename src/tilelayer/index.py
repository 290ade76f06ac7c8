# src/tilelayer/index.py

"""
This module maps layer keys onto the integer identifiers the store sorts by.

A KeyIndex must be deterministic and must send a box of keys to a small number
of contiguous identifier ranges, so that bounding-box reads become range scans.
Strategies are stored with the layer as a {"type", "properties"} dictionary and
rebuilt with key_index_from_dict.

Strategies:
    RowMajorSpatialKeyIndex: row by row over fixed key bounds.
    ZSpatialKeyIndex: Morton (Z-order) interleaving of col and row.
    ZSpaceTimeKeyIndex: Morton interleaving of col, row and a time bin.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, Union

from .keys import Key, KeyBounds, SpaceTimeKey, SpatialKey

log = logging.getLogger(__name__)

__all__ = [
    "KeyIndex",
    "RowMajorSpatialKeyIndex",
    "ZSpatialKeyIndex",
    "ZSpaceTimeKeyIndex",
    "KeyIndexMethod",
    "RowMajorKeyIndexMethod",
    "ZCurveKeyIndexMethod",
    "key_index_from_dict",
    "resolve_key_index",
    "MILLIS_PER_DAY"
]

MILLIS_PER_DAY = 86_400_000

IndexRange = Tuple[int, int]

def _merge_ranges(ranges: List[IndexRange]) -> List[IndexRange]:
    """Sort and merge overlapping or adjacent inclusive ranges."""
    merged: List[IndexRange] = []
    for lo, hi in sorted(ranges):
        if merged and lo <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], hi))
        else:
            merged.append((lo, hi))
    return merged

def interleave(coords: Sequence[int], bits: int) -> int:
    """Morton code of non-negative coordinates, dimension 0 in the lowest bit."""
    dims = len(coords)
    z = 0
    for i in range(bits):
        for d, value in enumerate(coords):
            z |= ((value >> i) & 1) << (i * dims + d)
    return z

def z_ranges(mins: Sequence[int], maxs: Sequence[int]) -> List[IndexRange]:
    """
    Decompose the box [mins, maxs] into contiguous Morton code ranges.

    Walks the implicit 2^d-ary tree of the curve: nodes fully inside the box
    emit their whole code range, disjoint nodes are pruned and straddling nodes
    are split.
    """
    dims = len(mins)
    level = max(1, max(maxs).bit_length())
    ranges: List[IndexRange] = []

    def _visit(prefix: int, origin: Tuple[int, ...], level: int) -> None:
        size = 1 << level
        if any(o > hi or o + size - 1 < lo for o, lo, hi in zip(origin, mins, maxs)):
            return

        if all(lo <= o and o + size - 1 <= hi for o, lo, hi in zip(origin, mins, maxs)):
            start = prefix << (dims * level)
            ranges.append((start, start + (1 << (dims * level)) - 1))
            return

        half = size >> 1
        for child in range(1 << dims):
            child_origin = tuple(o + ((child >> d) & 1) * half for d, o in enumerate(origin))
            _visit((prefix << dims) | child, child_origin, level - 1)

    _visit(0, (0,) * dims, level)
    return _merge_ranges(ranges)

class KeyIndex(ABC):
    """
    Total order over the keys of one layer.

    Args:
        key_bounds: Bounds of the keys the index was built for.
    """
    type_name: str = ""

    def __init__(self, key_bounds: Optional[KeyBounds] = None):
        self.key_bounds = key_bounds

    @abstractmethod
    def to_index(self, key: Key) -> int:
        ...

    @abstractmethod
    def index_ranges(self, key_range: KeyBounds) -> List[IndexRange]:
        """Sorted inclusive identifier ranges covering every key in key_range."""
        ...

    @abstractmethod
    def covers(self, key_bounds: KeyBounds) -> bool:
        """True if every key in key_bounds can be indexed."""
        ...

    def _properties(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        properties = self._properties()
        if self.key_bounds is not None:
            properties["key_bounds"] = self.key_bounds.to_dict()
        return {"type": self.type_name, "properties": properties}

    @classmethod
    def _from_properties(cls, key_bounds: Optional[KeyBounds], properties: Dict[str, Any]) -> "KeyIndex":
        return cls(key_bounds)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, KeyIndex) and self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} bounds={self.key_bounds}>"

class RowMajorSpatialKeyIndex(KeyIndex):
    """
    Row-major order over fixed spatial key bounds.

    Identifiers are dense, so a box of keys maps to one range per row.
    """
    type_name = "rowmajor"

    def __init__(self, key_bounds: KeyBounds):
        if key_bounds is None:
            raise ValueError("RowMajorSpatialKeyIndex requires key bounds.")
        super().__init__(key_bounds)
        self._col_min = key_bounds.min_key.col
        self._row_min = key_bounds.min_key.row
        self._width = key_bounds.max_key.col - self._col_min + 1

    def to_index(self, key: Key) -> int:
        if not self.key_bounds.includes(SpatialKey(key.col, key.row)):
            raise ValueError(f"Key {key} is outside row-major index bounds {self.key_bounds}")
        return (key.row - self._row_min) * self._width + (key.col - self._col_min)

    def index_ranges(self, key_range: KeyBounds) -> List[IndexRange]:
        clipped = self.key_bounds.intersect(key_range)
        if clipped is None:
            return []
        lo, hi = clipped.min_key, clipped.max_key
        ranges = [
            (self.to_index(SpatialKey(lo.col, row)), self.to_index(SpatialKey(hi.col, row)))
            for row in range(lo.row, hi.row + 1)
        ]
        return _merge_ranges(ranges)

    def covers(self, key_bounds: KeyBounds) -> bool:
        return self.key_bounds.contains(key_bounds)

class ZSpatialKeyIndex(KeyIndex):
    """Z-order curve over (col, row). Unbounded for non-negative keys below 2^31."""
    type_name = "zorder_spatial"
    BITS = 31

    def to_index(self, key: Key) -> int:
        self._check(key.col, key.row)
        return interleave((key.col, key.row), self.BITS)

    def _check(self, *coords: int) -> None:
        if any(c < 0 or c >= (1 << self.BITS) for c in coords):
            raise ValueError(f"Coordinates {coords} do not fit a {self.BITS}-bit Z-order index")

    def index_ranges(self, key_range: KeyBounds) -> List[IndexRange]:
        lo, hi = key_range.min_key, key_range.max_key
        return z_ranges((lo.col, lo.row), (hi.col, hi.row))

    def covers(self, key_bounds: KeyBounds) -> bool:
        limit = 1 << self.BITS
        lo, hi = key_bounds.min_key, key_bounds.max_key
        return min(lo.col, lo.row) >= 0 and max(hi.col, hi.row) < limit

class ZSpaceTimeKeyIndex(KeyIndex):
    """
    Z-order curve over (col, row, instant // temporal_resolution).

    Keys whose instants fall in the same temporal bin share an identifier, so
    readers must re-check the literal key.

    Args:
        key_bounds: Optional bounds of the indexed keys.
        temporal_resolution: Width of a time bin in milliseconds.
    """
    type_name = "zorder_spacetime"
    BITS = 21

    def __init__(self, key_bounds: Optional[KeyBounds] = None, temporal_resolution: int = MILLIS_PER_DAY):
        if temporal_resolution <= 0:
            raise ValueError(f"Temporal resolution must be positive, got {temporal_resolution}")
        super().__init__(key_bounds)
        self.temporal_resolution = int(temporal_resolution)

    def _coords(self, key: SpaceTimeKey) -> Tuple[int, int, int]:
        coords = (key.col, key.row, key.instant // self.temporal_resolution)
        if any(c < 0 or c >= (1 << self.BITS) for c in coords):
            raise ValueError(f"Key {key} does not fit a {self.BITS}-bit-per-axis Z-order index")
        return coords

    def to_index(self, key: Key) -> int:
        return interleave(self._coords(key), self.BITS)

    def index_ranges(self, key_range: KeyBounds) -> List[IndexRange]:
        return z_ranges(self._coords(key_range.min_key), self._coords(key_range.max_key))

    def covers(self, key_bounds: KeyBounds) -> bool:
        try:
            self._coords(key_bounds.min_key)
            self._coords(key_bounds.max_key)
        except ValueError:
            return False
        return True

    def _properties(self) -> Dict[str, Any]:
        return {"temporal_resolution": self.temporal_resolution}

    @classmethod
    def _from_properties(cls, key_bounds, properties):
        return cls(key_bounds, properties["temporal_resolution"])

_INDEX_TYPES: Dict[str, Type[KeyIndex]] = {
    cls.type_name: cls
    for cls in (RowMajorSpatialKeyIndex, ZSpatialKeyIndex, ZSpaceTimeKeyIndex)
}

def key_index_from_dict(config: Dict[str, Any]) -> KeyIndex:
    """Rebuild a KeyIndex from the dictionary produced by KeyIndex.to_dict."""
    type_name = config.get("type")
    if type_name not in _INDEX_TYPES:
        raise ValueError(f"Unknown key index type '{type_name}'. Must be one of: {list(_INDEX_TYPES)}")

    properties = dict(config.get("properties", {}))
    bounds = properties.get("key_bounds")
    key_bounds = KeyBounds.from_dict(bounds) if bounds else None
    return _INDEX_TYPES[type_name]._from_properties(key_bounds, properties)

class KeyIndexMethod(ABC):
    """Recipe for building a KeyIndex once the key bounds of a layer are known."""

    @abstractmethod
    def create_index(self, key_bounds: KeyBounds) -> KeyIndex:
        ...

class RowMajorKeyIndexMethod(KeyIndexMethod):
    def create_index(self, key_bounds: KeyBounds) -> KeyIndex:
        if key_bounds.key_type != "spatial":
            raise ValueError("Row-major indexing only supports spatial keys.")
        return RowMajorSpatialKeyIndex(key_bounds)

class ZCurveKeyIndexMethod(KeyIndexMethod):
    """
    Z-order indexing. Space-time layers need a temporal resolution.

    Args:
        temporal_resolution: Time bin width in milliseconds, used for space-time keys.
    """

    def __init__(self, temporal_resolution: Optional[int] = None):
        self.temporal_resolution = temporal_resolution

    @classmethod
    def by_milliseconds(cls, millis: int) -> "ZCurveKeyIndexMethod":
        return cls(millis)

    @classmethod
    def by_days(cls, days: int) -> "ZCurveKeyIndexMethod":
        return cls(days * MILLIS_PER_DAY)

    @classmethod
    def by_day(cls) -> "ZCurveKeyIndexMethod":
        return cls.by_days(1)

    @classmethod
    def by_year(cls) -> "ZCurveKeyIndexMethod":
        return cls.by_days(365)

    def create_index(self, key_bounds: KeyBounds) -> KeyIndex:
        if key_bounds.key_type == "spatial":
            return ZSpatialKeyIndex(key_bounds)
        if self.temporal_resolution is None:
            raise ValueError(
                "Space-time layers need a temporal resolution, e.g. ZCurveKeyIndexMethod.by_day()."
            )
        return ZSpaceTimeKeyIndex(key_bounds, self.temporal_resolution)

def resolve_key_index(key_index: Union[KeyIndex, KeyIndexMethod, Dict[str, Any]], key_bounds: KeyBounds) -> KeyIndex:
    """Turn a KeyIndex, KeyIndexMethod or stored config into a KeyIndex for key_bounds."""
    if isinstance(key_index, KeyIndex):
        return key_index
    if isinstance(key_index, KeyIndexMethod):
        return key_index.create_index(key_bounds)
    if isinstance(key_index, dict):
        return key_index_from_dict(key_index)
    raise TypeError(f"Expected KeyIndex, KeyIndexMethod or dict, got {type(key_index)}")
