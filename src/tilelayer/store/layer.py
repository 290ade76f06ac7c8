# src/tilelayer/store/layer.py

"""
This module implements create/read/update/delete of keyed tile layers.

A layer is a metadata entry in the AttributeStore plus a set of payloads in the
TileBackend. Each payload holds the (key, tile) records whose keys map to the
same index identifier; readers always re-check the literal key, since some key
indexes are not injective.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from tilelayer.exceptions import (
    LayerExistsError,
    LayerNotFoundError,
    LayerOutOfKeyBoundsError,
    ValueNotFoundError
)
from tilelayer.index import KeyIndex, KeyIndexMethod, resolve_key_index
from tilelayer.keys import Key, KeyBounds, key_type_of
from tilelayer.raster.layout import LayoutDefinition
from .attributes import AttributeStore
from .backend import TileBackend
from .codec import decode_records, encode_records
from .metadata import LayerId, LayerMetadata, as_layer_id

log = logging.getLogger(__name__)

__all__ = [
    "WriteMode",
    "LayerReader",
    "LayerWriter",
    "LayerUpdater",
    "LayerDeleter",
    "ValueReader",
    "persist_records"
]

Record = Tuple[Key, np.ndarray]
KeyIndexLike = Union[KeyIndex, KeyIndexMethod, Dict[str, Any]]

PAYLOAD_HEADER = {"format": "npz", "table": "tiles"}

class WriteMode(Enum):
    """How LayerWriter treats a layer that already exists."""
    CREATE = "create"
    APPEND = "append"
    OVERWRITE = "overwrite"

def _key_type(records: Sequence[Record]) -> str:
    key_types = {key_type_of(key) for key, _ in records}
    if len(key_types) != 1:
        raise ValueError(f"Records must share one key type, got {sorted(key_types)}")
    return key_types.pop()

def _value_description(tile: np.ndarray) -> Tuple[str, int]:
    if tile.ndim == 2:
        return "singleband", 1
    if tile.ndim == 3:
        return "multiband", tile.shape[0]
    raise ValueError(f"Tiles must be 2D (rows, cols) or 3D (bands, rows, cols), got shape {tile.shape}")

def persist_records(
    backend: TileBackend,
    layer_id: LayerId,
    index: KeyIndex,
    key_type: str,
    records: Iterable[Record],
    batch_size: int = 500
) -> int:
    """
    Merges records into the payloads of a layer.

    Records are grouped by index identifier and merged with whatever is already
    stored under that identifier; a record replaces an existing one with the same
    key, and the last record for a key within one call wins.

    Returns:
        int: The number of payloads written.
    """
    groups: Dict[int, Dict[Key, np.ndarray]] = {}
    for key, tile in records:
        groups.setdefault(index.to_index(key), {})[key] = np.asarray(tile)

    payloads = []
    for index_id in sorted(groups):
        existing = backend.get(layer_id, index_id)
        merged = dict(decode_records(existing, key_type)) if existing is not None else {}
        merged.update(groups[index_id])
        payloads.append((index_id, encode_records(list(merged.items()))))

    written = backend.put_many(layer_id, payloads, batch_size=batch_size)
    log.debug(f"Persisted {written} payloads to layer {layer_id}")
    return written

class _LayerOperation:
    def __init__(self, attribute_store: AttributeStore, backend: TileBackend):
        self.attribute_store = attribute_store
        self.backend = backend

class LayerReader(_LayerOperation):
    """Bounding-box reads over the key space of a layer."""

    def read(self, layer: Union[LayerId, str], query: Optional[KeyBounds] = None) -> List[Record]:
        """
        Reads every record whose key lies within query.

        Args:
            layer (Union[LayerId, str]): Layer to read.
            query (Optional[KeyBounds]): Inclusive key box. None reads the whole layer.

        Returns:
            List[Record]: (key, tile) pairs in index order.

        Raises:
            LayerNotFoundError: If the layer is not registered.
            ValueError: If query does not match the layer's key type.
        """
        layer_id = as_layer_id(layer)
        metadata = self.attribute_store.lookup(layer_id)

        bounds = metadata.key_bounds
        if query is not None:
            if query.key_type != metadata.key_type:
                raise ValueError(
                    f"Query key type '{query.key_type}' does not match layer key type '{metadata.key_type}'"
                )
            bounds = bounds.intersect(query)
            if bounds is None:
                return []

        index = metadata.index
        records: List[Record] = []
        for lo, hi in index.index_ranges(bounds):
            for _, payload in self.backend.range_scan(layer_id, lo, hi):
                records.extend(
                    (key, tile) for key, tile in decode_records(payload, metadata.key_type)
                    if bounds.includes(key)
                )

        log.debug(f"Read {len(records)} records from layer {layer_id}")
        return records

class ValueReader(_LayerOperation):
    """Single-tile lookups."""

    def read(self, layer: Union[LayerId, str], key: Key) -> np.ndarray:
        """
        Raises:
            LayerNotFoundError: If the layer is not registered.
            ValueNotFoundError: If no tile is stored under key.
        """
        layer_id = as_layer_id(layer)
        metadata = self.attribute_store.lookup(layer_id)
        if key_type_of(key) != metadata.key_type:
            raise ValueError(f"Key {key} does not match layer key type '{metadata.key_type}'")

        try:
            index_id = metadata.index.to_index(key)
        except ValueError:
            raise ValueNotFoundError(layer_id, key)

        payload = self.backend.get(layer_id, index_id)
        if payload is not None:
            for stored_key, tile in decode_records(payload, metadata.key_type):
                if stored_key == key:
                    return tile
        raise ValueNotFoundError(layer_id, key)

class LayerDeleter(_LayerOperation):

    def delete(self, layer: Union[LayerId, str]) -> None:
        """Removes the tiles and metadata of a layer. Deleting a missing layer is a no-op."""
        layer_id = as_layer_id(layer)
        removed = self.backend.delete_layer(layer_id)
        self.attribute_store.delete(layer_id)
        log.info(f"Deleted layer {layer_id} ({removed} payloads)")

class LayerUpdater(_LayerOperation):
    """Merges records into an existing layer under its stored key index."""

    def __init__(self, attribute_store: AttributeStore, backend: TileBackend, batch_size: int = 500):
        super().__init__(attribute_store, backend)
        self.batch_size = batch_size

    def update(self, layer: Union[LayerId, str], records: Iterable[Record]) -> int:
        """
        Args:
            layer (Union[LayerId, str]): Existing layer.
            records (Iterable[Record]): (key, tile) pairs to merge.

        Returns:
            int: The number of payloads written.

        Raises:
            LayerNotFoundError: If the layer is not registered.
            LayerOutOfKeyBoundsError: If a key cannot be addressed by the layer's index.
            ValueError: If the records' key type differs from the layer's.
        """
        layer_id = as_layer_id(layer)
        metadata = self.attribute_store.lookup(layer_id)

        records = list(records)
        if not records:
            return 0

        key_type = _key_type(records)
        if key_type != metadata.key_type:
            raise ValueError(f"Cannot update {metadata.key_type} layer {layer_id} with {key_type} keys")

        update_bounds = KeyBounds.from_keys(key for key, _ in records)
        index = metadata.index
        if not index.covers(update_bounds):
            raise LayerOutOfKeyBoundsError(layer_id, index.key_bounds)

        # Bounds first, so a partially applied update is still reachable by reads.
        self.attribute_store.update(layer_id, metadata.with_key_bounds(metadata.key_bounds.combine(update_bounds)))
        written = persist_records(self.backend, layer_id, index, key_type, records, self.batch_size)
        log.info(f"Updated layer {layer_id} with {len(records)} records")
        return written

class LayerWriter(_LayerOperation):
    """Creates layers from (key, tile) records."""

    def __init__(self, attribute_store: AttributeStore, backend: TileBackend, batch_size: int = 500):
        super().__init__(attribute_store, backend)
        self.batch_size = batch_size

    def write(
        self,
        layer: Union[LayerId, str],
        records: Iterable[Record],
        key_index: KeyIndexLike,
        mode: WriteMode = WriteMode.CREATE,
        layout: Optional[LayoutDefinition] = None,
        crs: Optional[str] = None
    ) -> int:
        """
        Registers the layer metadata, then writes the records.

        Args:
            layer (Union[LayerId, str]): Target layer.
            records (Iterable[Record]): (key, tile) pairs. Must not be empty.
            key_index (KeyIndexLike): Index, index method or stored index config.
                Ignored when appending, where the stored index is used.
            mode (WriteMode): Behaviour when the layer already exists.
            layout (Optional[LayoutDefinition]): Tiling grid the keys refer to.
            crs (Optional[str]): CRS of the layout.

        Returns:
            int: The number of payloads written.

        Raises:
            LayerExistsError: If the layer exists and mode is CREATE.
            LayerOutOfKeyBoundsError: If the index cannot address every key.
        """
        layer_id = as_layer_id(layer)
        records = list(records)
        if not records:
            raise ValueError(f"Cannot write layer {layer_id} without records")

        if self.attribute_store.layer_exists(layer_id):
            if mode == WriteMode.CREATE:
                raise LayerExistsError(layer_id)
            if mode == WriteMode.APPEND:
                updater = LayerUpdater(self.attribute_store, self.backend, self.batch_size)
                return updater.update(layer_id, records)
            log.info(f"Overwriting existing layer {layer_id}")
            LayerDeleter(self.attribute_store, self.backend).delete(layer_id)

        key_type = _key_type(records)
        key_bounds = KeyBounds.from_keys(key for key, _ in records)
        value_type, band_count = _value_description(np.asarray(records[0][1]))

        index = resolve_key_index(key_index, key_bounds)
        if not index.covers(key_bounds):
            raise LayerOutOfKeyBoundsError(layer_id, index.key_bounds)

        metadata = LayerMetadata(
            key_type=key_type,
            value_type=value_type,
            key_index=index.to_dict(),
            key_bounds=key_bounds,
            band_count=band_count,
            dtype=str(np.asarray(records[0][1]).dtype),
            layout=layout,
            crs=crs,
            header=dict(PAYLOAD_HEADER)
        )
        self.attribute_store.register(layer_id, metadata)

        written = persist_records(self.backend, layer_id, index, key_type, records, self.batch_size)
        log.info(f"Wrote layer {layer_id}: {len(records)} records in {written} payloads")
        return written
