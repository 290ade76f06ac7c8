# src/tilelayer/exceptions.py

"""
Exception hierarchy shared by the raster extraction and layer store modules.
"""

from typing import Optional, Tuple

__all__ = [
    "TileLayerError",
    "MissingTagError",
    "ParseError",
    "InvalidWindowError",
    "LayerNotFoundError",
    "LayerExistsError",
    "AlreadyExistsError",
    "LayerOutOfKeyBoundsError",
    "ValueNotFoundError",
    "LayerReindexPendingError",
    "PartialWriteError"
]

class TileLayerError(Exception):
    """Base class for all tilelayer errors."""

class MissingTagError(TileLayerError, KeyError):
    """A header tag required to build a temporal key is absent."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"There is no tag {tag} in the raster header")

    def __str__(self) -> str:
        return self.args[0]

class ParseError(TileLayerError, ValueError):
    """A timestamp tag value does not match the configured pattern."""

    def __init__(self, value: str, pattern: str):
        self.value = value
        self.pattern = pattern
        super().__init__(f"Cannot parse '{value}' with pattern '{pattern}'")

class InvalidWindowError(TileLayerError, ValueError):
    """A pixel window is malformed or outside the raster it targets."""

class LayerNotFoundError(TileLayerError):
    def __init__(self, layer_id):
        self.layer_id = layer_id
        super().__init__(f"Layer {layer_id} not found in the attribute store")

class LayerExistsError(TileLayerError):
    def __init__(self, layer_id):
        self.layer_id = layer_id
        super().__init__(
            f"Layer {layer_id} already exists. "
            f"Use WriteMode.APPEND or WriteMode.OVERWRITE to write into it."
        )

class AlreadyExistsError(TileLayerError):
    """Metadata registration collided with an existing entry."""

    def __init__(self, layer_id):
        self.layer_id = layer_id
        super().__init__(f"Metadata for layer {layer_id} is already registered")

class LayerOutOfKeyBoundsError(TileLayerError):
    def __init__(self, layer_id, key_bounds):
        self.layer_id = layer_id
        self.key_bounds = key_bounds
        super().__init__(
            f"Records for layer {layer_id} fall outside the key index bounds {key_bounds}. "
            f"Reindex the layer with wider bounds before writing them."
        )

class ValueNotFoundError(TileLayerError, KeyError):
    def __init__(self, layer_id, key):
        self.layer_id = layer_id
        self.key = key
        super().__init__(f"Value for key {key} not found in layer {layer_id}")

    def __str__(self) -> str:
        return self.args[0]

class LayerReindexPendingError(TileLayerError):
    def __init__(self, layer_id, stage: str):
        self.layer_id = layer_id
        self.stage = stage
        super().__init__(
            f"Layer {layer_id} has an interrupted reindex (stage '{stage}'). "
            f"Run recovery before starting a new one."
        )

class PartialWriteError(TileLayerError):
    """
    A composite operation stopped part way.

    Attributes:
        source: Layer the operation read from.
        target: Layer the operation was writing to.
        stage: Step that failed ('copy', 'delete_source', ...).
        progress: Inclusive (first, last) source index range written before the
            failure, or None when nothing was written.
    """

    def __init__(
        self,
        source,
        target,
        stage: str,
        progress: Optional[Tuple[int, int]] = None,
        payloads_written: int = 0
    ):
        self.source = source
        self.target = target
        self.stage = stage
        self.progress = progress
        self.payloads_written = payloads_written
        super().__init__(
            f"{stage} from {source} to {target} failed after {payloads_written} payloads "
            f"(completed index range: {progress})"
        )

    @property
    def resume_after(self) -> Optional[int]:
        """Last source index identifier known to be written."""
        return self.progress[1] if self.progress else None
