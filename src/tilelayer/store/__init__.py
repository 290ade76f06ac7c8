# src/tilelayer/store/__init__.py
#
# Copyright (c) The tilelayer project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The store subpackage persists keyed tile layers: connection handling, the
attribute store, layer read/write/update/delete and the composite copy, move
and reindex operations.
"""
# Connection and schema
from .client import (
    StoreClient,
    DEFAULT_CONNECTION
)

from .metadata import (
    LayerId,
    LayerMetadata,
    as_layer_id,
    FORMAT_VERSION
)

# Storage
from .backend import (
    TileBackend
)

from .attributes import (
    AttributeStore
)

# Layer operations
from .layer import (
    WriteMode,
    LayerReader,
    LayerWriter,
    LayerUpdater,
    LayerDeleter,
    ValueReader
)

from .composite import (
    CopyReport,
    LayerCopier,
    LayerMover,
    LayerReindexer,
    PendingOperations
)

__all__ = [
    # Connection and schema
    "StoreClient",
    "DEFAULT_CONNECTION",
    "LayerId",
    "LayerMetadata",
    "as_layer_id",
    "FORMAT_VERSION",

    # Storage
    "TileBackend",
    "AttributeStore",

    # Layer operations
    "WriteMode",
    "LayerReader",
    "LayerWriter",
    "LayerUpdater",
    "LayerDeleter",
    "ValueReader",
    "CopyReport",
    "LayerCopier",
    "LayerMover",
    "LayerReindexer",
    "PendingOperations"
]
