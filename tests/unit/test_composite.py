# tests/unit/test_composite.py

import pytest
from sqlalchemy.exc import OperationalError

from tilelayer.exceptions import (
    LayerExistsError,
    LayerNotFoundError,
    LayerReindexPendingError,
    PartialWriteError
)
from tilelayer.index import RowMajorKeyIndexMethod, RowMajorSpatialKeyIndex, ZCurveKeyIndexMethod
from tilelayer.keys import SpatialKey
from tilelayer.store import (
    LayerCopier,
    LayerDeleter,
    LayerId,
    LayerMover,
    LayerReader,
    LayerReindexer,
    LayerWriter,
    PendingOperations,
    TileBackend
)
from helpers import assert_same_records, tile

class FlakyBackend(TileBackend):
    """Backend that fails the n-th bulk write to one layer, and optionally every layer delete."""

    def __init__(self, client, fail_layer, fail_on_call=1, fail_deletes=False):
        super().__init__(client, scan_page_size=4)
        self.fail_layer = fail_layer
        self.fail_on_call = fail_on_call
        self.fail_deletes = fail_deletes
        self.calls = 0

    def put_many(self, layer_id, items, batch_size=500):
        if layer_id.name == self.fail_layer:
            self.calls += 1
            if self.calls == self.fail_on_call:
                raise OperationalError("INSERT INTO tiles", {}, Exception("disk I/O error"))
        return super().put_many(layer_id, items, batch_size)

    def delete_layer(self, layer_id):
        if self.fail_deletes and layer_id.name == self.fail_layer:
            raise OperationalError("DELETE FROM tiles", {}, Exception("database is locked"))
        return super().delete_layer(layer_id)

def _seed(attributes, backend, name="ndvi", cols=4, rows=3):
    records = [(SpatialKey(c, r), tile(10 * r + c)) for r in range(rows) for c in range(cols)]
    LayerWriter(attributes, backend).write(name, records, ZCurveKeyIndexMethod())
    return LayerReader(attributes, backend).read(name)

def test_copy_fidelity(store):
    attributes, backend = store
    original = _seed(attributes, backend)

    report = LayerCopier(attributes, backend, batch_size=5).copy("ndvi", "copy")

    assert report.payloads_written == 12
    assert_same_records(LayerReader(attributes, backend).read("copy"), original)
    assert attributes.lookup("copy").key_index == attributes.lookup("ndvi").key_index

def test_copy_under_new_index(store):
    attributes, backend = store
    original = _seed(attributes, backend)

    LayerCopier(attributes, backend).copy("ndvi", "rowmajor", key_index=RowMajorKeyIndexMethod())

    assert isinstance(attributes.lookup("rowmajor").index, RowMajorSpatialKeyIndex)
    assert_same_records(LayerReader(attributes, backend).read("rowmajor"), original)

def test_copy_to_existing_layer(store):
    attributes, backend = store
    _seed(attributes, backend, "a")
    _seed(attributes, backend, "b")

    with pytest.raises(LayerExistsError):
        LayerCopier(attributes, backend).copy("a", "b")

def test_copy_missing_source(store):
    attributes, backend = store
    with pytest.raises(LayerNotFoundError):
        LayerCopier(attributes, backend).copy("missing", "b")

def test_partial_copy_reports_progress_and_resumes(store):
    attributes, backend = store
    original = _seed(attributes, backend)
    flaky = FlakyBackend(attributes.client, fail_layer="copy", fail_on_call=3)

    with pytest.raises(PartialWriteError) as excinfo:
        LayerCopier(attributes, flaky, batch_size=2).copy("ndvi", "copy")

    error = excinfo.value
    assert error.stage == "copy"
    assert error.payloads_written == 4
    assert error.progress is not None
    assert len(LayerReader(attributes, backend).read("copy")) == 4

    report = LayerCopier(attributes, backend, batch_size=2).copy("ndvi", "copy", resume_after=error.resume_after)

    assert report.payloads_written == 8
    assert report.progress[0] == error.progress[0]
    assert report.progress[1] > error.progress[1]
    assert_same_records(LayerReader(attributes, backend).read("copy"), original)

def test_resumed_copy_that_fails_again_keeps_its_progress(store):
    attributes, backend = store
    original = _seed(attributes, backend)

    with pytest.raises(PartialWriteError) as first:
        LayerCopier(attributes, FlakyBackend(attributes.client, "copy", fail_on_call=3), batch_size=2).copy("ndvi", "copy")

    with pytest.raises(PartialWriteError) as second:
        LayerCopier(attributes, FlakyBackend(attributes.client, "copy", fail_on_call=1), batch_size=2).copy(
            "ndvi", "copy", resume_after=first.value.resume_after
        )

    assert second.value.payloads_written == 0
    assert second.value.progress == first.value.progress

    report = LayerCopier(attributes, backend, batch_size=2).copy("ndvi", "copy", resume_after=second.value.resume_after)
    assert report.payloads_written == 8
    assert_same_records(LayerReader(attributes, backend).read("copy"), original)

def test_reindex_transparency(store):
    attributes, backend = store
    before = _seed(attributes, backend)
    old_config = attributes.lookup("ndvi").key_index

    LayerReindexer(attributes, backend).reindex("ndvi", RowMajorKeyIndexMethod())

    metadata = attributes.lookup("ndvi")
    assert metadata.key_index != old_config
    assert isinstance(metadata.index, RowMajorSpatialKeyIndex)
    assert_same_records(LayerReader(attributes, backend).read("ndvi"), before)

    assert not attributes.layer_exists(LayerReindexer.temp_layer(LayerId("ndvi")))
    assert PendingOperations(attributes.client).list() == []

def test_interrupted_copy_stage_is_rolled_back(store):
    attributes, backend = store
    before = _seed(attributes, backend)
    temp = LayerReindexer.temp_layer(LayerId("ndvi"))
    flaky = FlakyBackend(attributes.client, fail_layer=temp.name, fail_on_call=2)

    with pytest.raises(PartialWriteError):
        LayerReindexer(attributes, flaky, batch_size=3).reindex("ndvi", RowMajorKeyIndexMethod())

    reindexer = LayerReindexer(attributes, backend)
    assert reindexer.pending.get(LayerId("ndvi"))["stage"] == "copying"
    with pytest.raises(LayerReindexPendingError):
        reindexer.reindex("ndvi", RowMajorKeyIndexMethod())

    assert reindexer.recover("ndvi") is True
    assert not attributes.layer_exists(temp)
    assert reindexer.pending.get(LayerId("ndvi")) is None
    assert attributes.lookup("ndvi").key_index["type"] == "zorder_spatial"
    assert_same_records(LayerReader(attributes, backend).read("ndvi"), before)

def test_interrupted_move_back_is_completed(store):
    attributes, backend = store
    before = _seed(attributes, backend)
    flaky = FlakyBackend(attributes.client, fail_layer="ndvi", fail_on_call=2)

    with pytest.raises(PartialWriteError):
        LayerReindexer(attributes, flaky, batch_size=3).reindex("ndvi", RowMajorKeyIndexMethod())

    reindexer = LayerReindexer(attributes, backend)
    assert reindexer.pending.get(LayerId("ndvi"))["stage"] == "moving"

    assert reindexer.recover("ndvi") is True
    assert isinstance(attributes.lookup("ndvi").index, RowMajorSpatialKeyIndex)
    assert_same_records(LayerReader(attributes, backend).read("ndvi"), before)
    assert not attributes.layer_exists(LayerReindexer.temp_layer(LayerId("ndvi")))

def test_interrupted_after_temporary_copy_is_completed(store):
    attributes, backend = store
    before = _seed(attributes, backend)
    flaky = FlakyBackend(attributes.client, fail_layer="ndvi", fail_on_call=0, fail_deletes=True)

    with pytest.raises(OperationalError):
        LayerReindexer(attributes, flaky).reindex("ndvi", RowMajorKeyIndexMethod())

    reindexer = LayerReindexer(attributes, backend)
    assert reindexer.pending.get(LayerId("ndvi"))["stage"] == "copied"
    assert attributes.lookup("ndvi").key_index["type"] == "zorder_spatial"

    assert reindexer.recover("ndvi") is True
    assert isinstance(attributes.lookup("ndvi").index, RowMajorSpatialKeyIndex)
    assert_same_records(LayerReader(attributes, backend).read("ndvi"), before)
    assert not attributes.layer_exists(LayerReindexer.temp_layer(LayerId("ndvi")))
    assert reindexer.pending.list() == []

def test_recover_after_original_was_deleted(store):
    attributes, backend = store
    before = _seed(attributes, backend)
    flaky = FlakyBackend(attributes.client, fail_layer="ndvi", fail_on_call=0, fail_deletes=True)

    with pytest.raises(OperationalError):
        LayerReindexer(attributes, flaky).reindex("ndvi", RowMajorKeyIndexMethod())

    # the process died right after removing the original
    reindexer = LayerReindexer(attributes, backend)
    LayerDeleter(attributes, backend).delete("ndvi")
    reindexer.pending.set_stage(LayerId("ndvi"), "deleted_original")

    assert reindexer.recover("ndvi") is True
    assert isinstance(attributes.lookup("ndvi").index, RowMajorSpatialKeyIndex)
    assert_same_records(LayerReader(attributes, backend).read("ndvi"), before)
    assert not attributes.layer_exists(LayerReindexer.temp_layer(LayerId("ndvi")))

def test_reindex_keeps_a_layer_that_owns_the_temporary_name(store):
    attributes, backend = store
    _seed(attributes, backend)
    temp = LayerReindexer.temp_layer(LayerId("ndvi"))
    unrelated = _seed(attributes, backend, name=temp.name)

    with pytest.raises(LayerExistsError):
        LayerReindexer(attributes, backend).reindex("ndvi", RowMajorKeyIndexMethod())

    assert_same_records(LayerReader(attributes, backend).read(temp), unrelated)
    assert PendingOperations(attributes.client).list() == []

def test_recover_without_pending_reindex(store):
    attributes, backend = store
    _seed(attributes, backend)
    assert LayerReindexer(attributes, backend).recover("ndvi") is False

def test_move(store):
    attributes, backend = store
    original = _seed(attributes, backend)

    LayerMover(attributes, backend).move("ndvi", "archive")

    assert not attributes.layer_exists("ndvi")
    assert_same_records(LayerReader(attributes, backend).read("archive"), original)

def test_move_delete_failure_leaves_both_layers(store):
    attributes, backend = store
    original = _seed(attributes, backend)
    flaky = FlakyBackend(attributes.client, fail_layer="ndvi", fail_on_call=0, fail_deletes=True)

    with pytest.raises(PartialWriteError) as excinfo:
        LayerMover(attributes, flaky).move("ndvi", "archive")

    assert excinfo.value.stage == "delete_source"
    assert_same_records(LayerReader(attributes, backend).read("ndvi"), original)
    assert_same_records(LayerReader(attributes, backend).read("archive"), original)
