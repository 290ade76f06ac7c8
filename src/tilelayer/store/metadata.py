# src/tilelayer/store/metadata.py

"""
This module defines how layers are named and described in the attribute store.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Union

from tilelayer.index import KeyIndex, key_index_from_dict
from tilelayer.keys import KeyBounds
from tilelayer.raster.layout import LayoutDefinition

log = logging.getLogger(__name__)

__all__ = [
    "FORMAT_VERSION",
    "LayerId",
    "LayerMetadata",
    "as_layer_id"
]

FORMAT_VERSION = 1

@dataclass(frozen=True, order=True)
class LayerId:
    """Layer name plus pyramid level."""
    name: str
    zoom: int = 0

    def __post_init__(self):
        if not self.name:
            raise ValueError("Layer name must not be empty.")
        if self.zoom < 0:
            raise ValueError(f"Zoom level must be non-negative, got {self.zoom}")

    def __str__(self) -> str:
        return f"{self.name}:{self.zoom}"

def as_layer_id(layer: Union[LayerId, str]) -> LayerId:
    """Accept a LayerId or a bare layer name (zoom 0)."""
    if isinstance(layer, LayerId):
        return layer
    if isinstance(layer, str):
        return LayerId(layer)
    raise TypeError(f"Expected LayerId or str, got {type(layer)}")

@dataclass(frozen=True)
class LayerMetadata:
    """
    Everything the store needs to know about a layer before touching its tiles.

    Args:
        key_type: 'spatial' or 'spacetime'.
        value_type: 'singleband' or 'multiband'.
        key_index: KeyIndex configuration as produced by KeyIndex.to_dict.
        key_bounds: Bounds of the keys present in the layer.
        band_count: Bands per tile.
        dtype: Pixel data type name.
        layout: Optional tiling grid the keys refer to.
        crs: Optional CRS string (EPSG code or WKT).
        header: Backend description (format, table).
        format_version: Version of the stored payload format.
    """
    key_type: str
    value_type: str
    key_index: Dict[str, Any]
    key_bounds: KeyBounds
    band_count: int = 1
    dtype: str = "float32"
    layout: Optional[LayoutDefinition] = None
    crs: Optional[str] = None
    header: Dict[str, Any] = field(default_factory=dict)
    format_version: int = FORMAT_VERSION

    @property
    def index(self) -> KeyIndex:
        return key_index_from_dict(self.key_index)

    def with_key_index(self, key_index: KeyIndex) -> "LayerMetadata":
        return replace(self, key_index=key_index.to_dict())

    def with_key_bounds(self, key_bounds: KeyBounds) -> "LayerMetadata":
        return replace(self, key_bounds=key_bounds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_type": self.key_type,
            "value_type": self.value_type,
            "key_index": self.key_index,
            "key_bounds": self.key_bounds.to_dict(),
            "band_count": self.band_count,
            "dtype": self.dtype,
            "layout": self.layout.to_dict() if self.layout else None,
            "crs": self.crs,
            "header": self.header,
            "format_version": self.format_version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LayerMetadata":
        return cls(
            key_type=data["key_type"],
            value_type=data["value_type"],
            key_index=data["key_index"],
            key_bounds=KeyBounds.from_dict(data["key_bounds"]),
            band_count=data.get("band_count", 1),
            dtype=data.get("dtype", "float32"),
            layout=LayoutDefinition.from_dict(data["layout"]) if data.get("layout") else None,
            crs=data.get("crs"),
            header=data.get("header", {}),
            format_version=data.get("format_version", FORMAT_VERSION)
        )
