from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from simdex.entry import EntryMetadata
from simdex.index.base import Index


@pytest.fixture
def metadata() -> EntryMetadata:
    return EntryMetadata(
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        description="first run",
        status="done",
        submitted=True,
    )


def test_upsert_entry_inserts(index: Index, metadata: EntryMetadata):
    before = datetime.now()
    entry_id = index.upsert_entry("COLL1", "run1", metadata, {"steps": 100})

    entry = index.entry("COLL1", "run1")
    assert entry is not None
    assert entry.id == entry_id
    assert entry.collection_uid == "COLL1"
    assert entry.name == "run1"
    assert entry.description == "first run"
    assert entry.status == "done"
    assert entry.submitted is True
    assert entry.parameters == {"steps": 100}
    assert entry.last_sync_time is not None
    assert entry.last_sync_time >= before


def test_created_at_stored_as_naive_utc(index: Index):
    metadata = EntryMetadata(
        created_at=datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2))),
        description="",
        status="initialized",
    )
    index.upsert_entry("COLL1", "run1", metadata)

    entry = index.entry("COLL1", "run1")
    assert entry.created_at == datetime(2024, 1, 1, 0, 0)
    assert entry.created_at.tzinfo is None


def test_upsert_entry_updates_in_place(index: Index, metadata: EntryMetadata):
    first_id = index.upsert_entry("COLL1", "run1", metadata, {"steps": 100})
    first_sync = index.get_last_sync_time("COLL1", "run1")

    updated = EntryMetadata(
        created_at=metadata.created_at,
        description="rerun",
        status="failed",
        submitted=False,
    )
    second_id = index.upsert_entry("COLL1", "run1", updated, {"steps": 200, "dt": 0.1})

    assert second_id == first_id
    entries = index.entries("COLL1")
    assert len(entries) == 1
    entry = entries[0]
    assert entry.description == "rerun"
    assert entry.status == "failed"
    assert entry.submitted is False
    assert entry.parameters == {"steps": 200, "dt": 0.1}
    assert entry.last_sync_time >= first_sync


def test_upsert_entry_replaces_parameters(index: Index, metadata: EntryMetadata):
    index.upsert_entry("COLL1", "run1", metadata, {"a": 1, "b": 2})
    index.upsert_entry("COLL1", "run1", metadata, {"a": 3})

    assert index.entry("COLL1", "run1").parameters == {"a": 3}


def test_upsert_entry_accepts_mapping(index: Index):
    index.upsert_entry(
        "COLL1",
        "run1",
        {
            "created_at": datetime(2024, 1, 1),
            "description": "plain",
            "status": "done",
            "submitted": False,
        },
    )
    entry = index.entry("COLL1", "run1")
    assert entry.description == "plain"
    assert entry.parameters == {}


def test_numpy_parameters_are_serialized(index: Index, metadata: EntryMetadata):
    index.upsert_entry(
        "COLL1", "run1", metadata, {"n": np.int64(3), "x": np.float32(0.5)}
    )
    assert index.entry("COLL1", "run1").parameters == {"n": 3, "x": 0.5}


def test_same_name_in_different_collections(index: Index, metadata: EntryMetadata):
    id_a = index.upsert_entry("COLL_A", "run1", metadata)
    id_b = index.upsert_entry("COLL_B", "run1", metadata)

    assert id_a != id_b
    assert [e.name for e in index.entries("COLL_A")] == ["run1"]
    assert [e.name for e in index.entries("COLL_B")] == ["run1"]


def test_entries_in_insertion_order(index: Index, metadata: EntryMetadata):
    for name in ("zeta", "alpha", "mid"):
        index.upsert_entry("COLL1", name, metadata)

    assert [e.name for e in index.entries("COLL1")] == ["zeta", "alpha", "mid"]


def test_get_last_sync_time_unknown_entry(index: Index):
    assert index.get_last_sync_time("COLL1", "nothing") is None
    assert index.entry("COLL1", "nothing") is None


def test_parameter_keys(index: Index, metadata: EntryMetadata):
    index.upsert_entry("COLL1", "run1", metadata, {"steps": 100, "solver": "newton"})
    index.upsert_entry("COLL1", "run2", metadata, {"steps": 200, "dt": 0.01})
    index.upsert_entry("OTHER", "run1", metadata, {"unrelated": 1})

    keys = index.parameter_keys("COLL1")

    assert keys == {"steps": 100, "solver": "newton", "dt": 0.01}
    assert list(keys) == ["steps", "solver", "dt"]


def test_parameter_keys_unknown_collection(index: Index):
    assert index.parameter_keys("NOPE") == {}


def test_collection_contains_entries(index: Index, tmp_path, metadata: EntryMetadata):
    index.upsert_collection("COLL1", tmp_path)
    index.upsert_entry("COLL1", "run1", metadata, {"a": 1})
    index.upsert_entry("COLL1", "run2", metadata, {"a": 2, "b": 1})

    collection = index.collection("COLL1")
    assert [e.name for e in collection.entries] == ["run1", "run2"]
    assert [e.parameters for e in collection.entries] == [{"a": 1}, {"a": 2, "b": 1}]


def test_entry_record_fields(index: Index, metadata: EntryMetadata):
    index.upsert_entry("COLL1", "run1", metadata, {"steps": 100})
    entry = index.entry("COLL1", "run1")

    assert entry.created_at == datetime(2024, 1, 1, 12, 0)
    assert (entry.collection_uid, entry.name) == ("COLL1", "run1")
    assert entry.parameters == {"steps": 100}
