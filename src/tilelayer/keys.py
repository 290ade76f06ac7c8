# src/tilelayer/keys.py

"""
This module defines the keys that address tiles inside a layer.

A SpatialKey is a (col, row) position in a layer's tiling grid. A SpaceTimeKey
adds the acquisition instant in epoch milliseconds. Keys are ordered tuples so
they sort and compare structurally; KeyBounds describes an inclusive box of keys.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Iterable, NamedTuple, Optional, TypeVar, Union

log = logging.getLogger(__name__)

__all__ = [
    "SpatialKey",
    "SpaceTimeKey",
    "Key",
    "KeyBounds",
    "key_type_of",
    "key_to_dict",
    "key_from_dict"
]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

class SpatialKey(NamedTuple):
    col: int
    row: int

    @property
    def spatial_key(self) -> "SpatialKey":
        return self

class SpaceTimeKey(NamedTuple):
    col: int
    row: int
    instant: int

    @classmethod
    def from_datetime(cls, col: int, row: int, time: datetime) -> "SpaceTimeKey":
        """Build a key from a datetime. Naive datetimes are treated as UTC."""
        if time.tzinfo is None:
            time = time.replace(tzinfo=timezone.utc)
        delta = time - _EPOCH
        millis = (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
        return cls(col, row, millis)

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.instant / 1000.0, tz=timezone.utc)

    @property
    def spatial_key(self) -> SpatialKey:
        return SpatialKey(self.col, self.row)

Key = Union[SpatialKey, SpaceTimeKey]

_KEY_TYPES = {
    "spatial": SpatialKey,
    "spacetime": SpaceTimeKey,
}

def key_type_of(key: Key) -> str:
    """Registered type name of a key ('spatial' or 'spacetime')."""
    if isinstance(key, SpaceTimeKey):
        return "spacetime"
    if isinstance(key, SpatialKey):
        return "spatial"
    raise TypeError(f"Unsupported key type: {type(key)}")

def key_to_dict(key: Key) -> Dict[str, int]:
    return {name: int(value) for name, value in key._asdict().items()}

def key_from_dict(data: Dict[str, int], key_type: Optional[str] = None) -> Key:
    if key_type is None:
        key_type = "spacetime" if "instant" in data else "spatial"
    try:
        cls = _KEY_TYPES[key_type]
    except KeyError:
        raise ValueError(f"Unknown key type '{key_type}'. Must be one of: {list(_KEY_TYPES)}")
    return cls(**{name: int(data[name]) for name in cls._fields})

K = TypeVar("K", SpatialKey, SpaceTimeKey)

@dataclass(frozen=True)
class KeyBounds(Generic[K]):
    """
    Inclusive box of keys: every component of a contained key lies between the
    matching components of min_key and max_key.
    """
    min_key: K
    max_key: K

    def __post_init__(self):
        if type(self.min_key) is not type(self.max_key):
            raise TypeError(
                f"KeyBounds keys must share a type, got {type(self.min_key).__name__} "
                f"and {type(self.max_key).__name__}"
            )
        if any(lo > hi for lo, hi in zip(self.min_key, self.max_key)):
            raise ValueError(f"KeyBounds min_key {self.min_key} exceeds max_key {self.max_key}")

    @classmethod
    def from_keys(cls, keys: Iterable[K]) -> "KeyBounds[K]":
        keys = list(keys)
        if not keys:
            raise ValueError("Cannot compute KeyBounds of an empty key collection.")
        key_cls = type(keys[0])
        return cls(
            key_cls(*(min(components) for components in zip(*keys))),
            key_cls(*(max(components) for components in zip(*keys)))
        )

    @property
    def key_type(self) -> str:
        return key_type_of(self.min_key)

    def includes(self, key: K) -> bool:
        return all(lo <= v <= hi for lo, v, hi in zip(self.min_key, key, self.max_key))

    def contains(self, other: "KeyBounds[K]") -> bool:
        return self.includes(other.min_key) and self.includes(other.max_key)

    def combine(self, other: "KeyBounds[K]") -> "KeyBounds[K]":
        key_cls = type(self.min_key)
        return KeyBounds(
            key_cls(*(min(a, b) for a, b in zip(self.min_key, other.min_key))),
            key_cls(*(max(a, b) for a, b in zip(self.max_key, other.max_key)))
        )

    def intersect(self, other: "KeyBounds[K]") -> Optional["KeyBounds[K]"]:
        key_cls = type(self.min_key)
        lo = key_cls(*(max(a, b) for a, b in zip(self.min_key, other.min_key)))
        hi = key_cls(*(min(a, b) for a, b in zip(self.max_key, other.max_key)))
        if any(a > b for a, b in zip(lo, hi)):
            return None
        return KeyBounds(lo, hi)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_type": self.key_type,
            "min_key": key_to_dict(self.min_key),
            "max_key": key_to_dict(self.max_key)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyBounds":
        key_type = data.get("key_type")
        return cls(
            key_from_dict(data["min_key"], key_type),
            key_from_dict(data["max_key"], key_type)
        )
