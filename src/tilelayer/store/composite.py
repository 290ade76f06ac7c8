# src/tilelayer/store/composite.py

"""
This module chains the layer CRUD primitives into copy, move and reindex.

None of these operations is atomic. Copies report the last source index range
they completed so a failed copy can be resumed, and reindexing leaves a
PendingOperation marker describing its current stage until it finishes, so an
interrupted reindex can be rolled back or completed with LayerReindexer.recover.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from tilelayer.exceptions import (
    LayerExistsError,
    LayerOutOfKeyBoundsError,
    LayerReindexPendingError,
    PartialWriteError
)
from tilelayer.index import resolve_key_index
from .attributes import AttributeStore
from .backend import TileBackend
from .codec import decode_records
from .layer import KeyIndexLike, LayerDeleter, persist_records
from .metadata import LayerId, as_layer_id
from .models import PendingOperation

log = logging.getLogger(__name__)

__all__ = [
    "CopyReport",
    "LayerCopier",
    "LayerMover",
    "LayerReindexer",
    "PendingOperations",
    "REINDEX_SUFFIX"
]

REINDEX_SUFFIX = "__reindex_tmp"
REINDEX = "reindex"

# Reindex stages, in order.
STAGE_COPYING = "copying"
STAGE_COPIED = "copied"
STAGE_DELETED_ORIGINAL = "deleted_original"
STAGE_MOVING = "moving"

@dataclass
class CopyReport:
    """
    Outcome of a completed copy.

    Attributes:
        source: Layer read from.
        target: Layer written to.
        payloads_written: Payloads read from the source and written in this call.
        progress: Inclusive (first, last) source index range copied so far, counting
            the calls this one resumed. None if nothing has been copied.
    """
    source: LayerId
    target: LayerId
    payloads_written: int = 0
    progress: Optional[Tuple[int, int]] = None

class PendingOperations:
    """Access to the markers multi-step operations leave in the pending_operations table."""

    def __init__(self, client):
        self.client = client

    @staticmethod
    def _filter(stmt, layer_id: LayerId, operation: str):
        return stmt.where(
            PendingOperation.layer_name == layer_id.name,
            PendingOperation.zoom == layer_id.zoom,
            PendingOperation.operation == operation
        )

    def get(self, layer_id: LayerId, operation: str = REINDEX) -> Optional[Dict[str, Any]]:
        with self.client.SessionLocal() as session:
            marker = session.execute(self._filter(select(PendingOperation), layer_id, operation)).scalar_one_or_none()
            if marker is None:
                return None
            return {
                "layer_id": layer_id,
                "operation": marker.operation,
                "temp_name": marker.temp_name,
                "stage": marker.stage,
                "details": marker.details or {}
            }

    def start(self, layer_id: LayerId, temp_name: str, details: Dict[str, Any], operation: str = REINDEX) -> None:
        with self.client.SessionLocal() as session:
            session.add(PendingOperation(
                layer_name=layer_id.name,
                zoom=layer_id.zoom,
                operation=operation,
                temp_name=temp_name,
                stage=STAGE_COPYING,
                details=details
            ))
            session.commit()

    def set_stage(self, layer_id: LayerId, stage: str, operation: str = REINDEX) -> None:
        with self.client.SessionLocal() as session:
            marker = session.execute(self._filter(select(PendingOperation), layer_id, operation)).scalar_one()
            marker.stage = stage
            session.commit()
        log.debug(f"{operation} of {layer_id} reached stage '{stage}'")

    def clear(self, layer_id: LayerId, operation: str = REINDEX) -> None:
        with self.client.SessionLocal() as session:
            session.execute(self._filter(delete(PendingOperation), layer_id, operation))
            session.commit()

    def list(self) -> List[Tuple[LayerId, str, str]]:
        """(layer, operation, stage) of every pending marker."""
        with self.client.SessionLocal() as session:
            rows = session.execute(
                select(PendingOperation.layer_name, PendingOperation.zoom, PendingOperation.operation, PendingOperation.stage)
                .order_by(PendingOperation.layer_name, PendingOperation.zoom)
            ).all()
        return [(LayerId(row.layer_name, row.zoom), row.operation, row.stage) for row in rows]

class LayerCopier:
    """
    Streams the payloads of one layer into another in source index order.

    Args:
        attribute_store (AttributeStore): Metadata registry.
        backend (TileBackend): Tile storage.
        batch_size (int): Source payloads written per batch. Progress is tracked per batch.
    """

    def __init__(self, attribute_store: AttributeStore, backend: TileBackend, batch_size: int = 100):
        self.attribute_store = attribute_store
        self.backend = backend
        self.batch_size = batch_size

    def copy(
        self,
        source: Union[LayerId, str],
        target: Union[LayerId, str],
        key_index: Optional[KeyIndexLike] = None,
        resume_after: Optional[int] = None
    ) -> CopyReport:
        """
        Copies every record of source into target.

        Args:
            source (Union[LayerId, str]): Existing layer.
            target (Union[LayerId, str]): Destination, which must not exist unless resuming.
            key_index (Optional[KeyIndexLike]): Index for the target. None keeps the source index.
            resume_after (Optional[int]): Source index identifier from PartialWriteError.resume_after;
                payloads up to and including it are skipped.

        Returns:
            CopyReport: Payloads this call wrote and the source range copied so far.

        Raises:
            LayerNotFoundError: If source is not registered.
            LayerExistsError: If target exists and resume_after is None.
            PartialWriteError: If reading or writing failed part way.
        """
        source_id = as_layer_id(source)
        target_id = as_layer_id(target)
        metadata = self.attribute_store.lookup(source_id)

        target_exists = self.attribute_store.layer_exists(target_id)
        if target_exists and resume_after is None:
            raise LayerExistsError(target_id)

        source_index = metadata.index
        target_index = source_index if key_index is None else resolve_key_index(key_index, metadata.key_bounds)
        if not target_index.covers(metadata.key_bounds):
            raise LayerOutOfKeyBoundsError(target_id, target_index.key_bounds)
        same_index = target_index == source_index

        if not target_exists:
            self.attribute_store.register(target_id, metadata.with_key_index(target_index))

        report = CopyReport(source_id, target_id)
        lo = None
        if resume_after is not None:
            # Earlier calls wrote everything from the first source payload through resume_after
            bounds = self.backend.index_bounds(source_id)
            first = resume_after if bounds is None else min(bounds[0], resume_after)
            report.progress = (first, resume_after)
            lo = resume_after + 1
        batch: List[Tuple[int, bytes]] = []

        def _flush() -> None:
            if same_index:
                self.backend.put_many(target_id, batch, batch_size=len(batch))
            else:
                records = [record for _, payload in batch for record in decode_records(payload, metadata.key_type)]
                persist_records(self.backend, target_id, target_index, metadata.key_type, records, self.batch_size)

            first = batch[0][0] if report.progress is None else report.progress[0]
            report.progress = (first, batch[-1][0])
            report.payloads_written += len(batch)
            log.debug(f"Copied {source_id} -> {target_id} through index {batch[-1][0]}")
            batch.clear()

        try:
            for item in self.backend.range_scan(source_id, lo=lo):
                batch.append(item)
                if len(batch) >= self.batch_size:
                    _flush()
            if batch:
                _flush()
        except SQLAlchemyError as e:
            log.warning(f"Copy {source_id} -> {target_id} interrupted, completed range {report.progress}: {e}")
            raise PartialWriteError(
                source_id, target_id, "copy",
                progress=report.progress,
                payloads_written=report.payloads_written
            ) from e

        log.info(f"Copied layer {source_id} to {target_id} ({report.payloads_written} payloads)")
        return report

class LayerMover:
    """Copy, then delete the source."""

    def __init__(self, attribute_store: AttributeStore, backend: TileBackend, batch_size: int = 100):
        self.copier = LayerCopier(attribute_store, backend, batch_size)
        self.deleter = LayerDeleter(attribute_store, backend)

    def move(self, source: Union[LayerId, str], target: Union[LayerId, str]) -> CopyReport:
        """
        Raises:
            PartialWriteError: stage 'copy' if copying failed, or stage 'delete_source'
                if the data now exists in both layers. Retrying the delete is safe.
        """
        source_id = as_layer_id(source)
        target_id = as_layer_id(target)
        report = self.copier.copy(source_id, target_id)
        try:
            self.deleter.delete(source_id)
        except SQLAlchemyError as e:
            raise PartialWriteError(
                source_id, target_id, "delete_source",
                progress=report.progress,
                payloads_written=report.payloads_written
            ) from e
        log.info(f"Moved layer {source_id} to {target_id}")
        return report

class LayerReindexer:
    """
    Rewrites a layer under a new key index through a temporary layer.

    Stages recorded in the pending marker:
        copying: the temporary copy is being written; the original is intact.
        copied: the temporary copy is complete.
        deleted_original: the original layer is gone.
        moving: the temporary copy is being copied back under the original name.
    """

    def __init__(self, attribute_store: AttributeStore, backend: TileBackend, batch_size: int = 100):
        self.attribute_store = attribute_store
        self.backend = backend
        self.copier = LayerCopier(attribute_store, backend, batch_size)
        self.deleter = LayerDeleter(attribute_store, backend)
        self.pending = PendingOperations(attribute_store.client)

    @staticmethod
    def temp_layer(layer_id: LayerId) -> LayerId:
        return LayerId(f"{layer_id.name}{REINDEX_SUFFIX}", layer_id.zoom)

    def reindex(self, layer: Union[LayerId, str], key_index: KeyIndexLike) -> None:
        """
        Raises:
            LayerExistsError: If a layer already uses the temporary reindex name.
            LayerNotFoundError: If the layer is not registered.
            LayerReindexPendingError: If an earlier reindex of the layer was interrupted.
            PartialWriteError: If the copy to the temporary layer failed. The
                original is untouched; recover() discards the partial copy.
        """
        layer_id = as_layer_id(layer)
        marker = self.pending.get(layer_id)
        if marker is not None:
            raise LayerReindexPendingError(layer_id, marker["stage"])

        metadata = self.attribute_store.lookup(layer_id)
        new_index = resolve_key_index(key_index, metadata.key_bounds)
        temp_id = self.temp_layer(layer_id)

        # Without a marker this name belongs to someone else's layer.
        if self.attribute_store.layer_exists(temp_id):
            raise LayerExistsError(temp_id)

        self.pending.start(layer_id, temp_id.name, {"key_index": new_index.to_dict()})
        try:
            self.copier.copy(layer_id, temp_id, key_index=new_index)
            self.pending.set_stage(layer_id, STAGE_COPIED)
            self._complete(layer_id, temp_id)
        except Exception:
            stage = (self.pending.get(layer_id) or {}).get("stage")
            log.warning(f"Reindex of {layer_id} interrupted at stage '{stage}'. Run recover to resolve it.")
            raise

        log.info(f"Reindexed layer {layer_id} with {new_index.type_name}")

    def _complete(self, layer_id: LayerId, temp_id: LayerId) -> None:
        self.deleter.delete(layer_id)
        self.pending.set_stage(layer_id, STAGE_DELETED_ORIGINAL)

        self.pending.set_stage(layer_id, STAGE_MOVING)
        self.copier.copy(temp_id, layer_id)
        self.deleter.delete(temp_id)
        self.pending.clear(layer_id)

    def recover(self, layer: Union[LayerId, str]) -> bool:
        """
        Resolves an interrupted reindex: rolls back if the temporary copy was
        incomplete, otherwise finishes the remaining steps.

        Returns:
            bool: True if a pending reindex was found and resolved.
        """
        layer_id = as_layer_id(layer)
        marker = self.pending.get(layer_id)
        if marker is None:
            log.info(f"No pending reindex for layer {layer_id}")
            return False

        temp_id = LayerId(marker["temp_name"], layer_id.zoom)
        stage = marker["stage"]

        if stage == STAGE_COPYING:
            self.deleter.delete(temp_id)
            self.pending.clear(layer_id)
            log.warning(f"Rolled back reindex of {layer_id}: discarded partial copy {temp_id}")
            return True

        if stage in (STAGE_DELETED_ORIGINAL, STAGE_MOVING):
            # The copy back may be partial; start it over from the complete temporary layer.
            self.deleter.delete(layer_id)
            self.pending.set_stage(layer_id, STAGE_MOVING)
            self.copier.copy(temp_id, layer_id)
            self.deleter.delete(temp_id)
            self.pending.clear(layer_id)
        else:
            self._complete(layer_id, temp_id)

        log.info(f"Completed interrupted reindex of {layer_id} from stage '{stage}'")
        return True
