from pathlib import Path

import pytest

from simdex.exceptions import InvalidCollectionError
from simdex.index.base import Index, _validate_path


@pytest.fixture
def index(tmp_path):
    index = Index(sql_file=":memory:", search_paths=[tmp_path])
    yield index
    index.close()


@pytest.mark.parametrize("uid,result", [("123", True), ("345", False)])
def test_validate_path(tmp_path: Path, make_identifier, uid: str, result: bool):
    collection_path = tmp_path / "collection"
    make_identifier(collection_path, "123")

    assert _validate_path(collection_path, uid) == result


def test_validate_path_with_suffix(tmp_path: Path, make_identifier):
    make_identifier(tmp_path / "collection", "123", ".yml")
    assert _validate_path(tmp_path / "collection", "123")


def test_insert_collection(index: Index, tmp_path):
    uid = "COLL123"
    collection_path = tmp_path / "collection1"

    index.upsert_collection(uid, collection_path)
    assert index.collection_path(uid) == collection_path


def test_collection_path_is_stored_absolute(index: Index, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    index.upsert_collection("REL", "relative/coll")

    collection = index.collection("REL")
    assert collection is not None
    assert collection.path == (tmp_path / "relative" / "coll").as_posix()


def test_upsert_collection(index: Index, tmp_path):
    uid = "COLL123"
    collection_path = tmp_path / "collection1"
    index.upsert_collection(uid, collection_path)
    assert index.collection_path(uid) == collection_path

    # Update the path
    new_collection_path = tmp_path / "collection2"
    index.upsert_collection(uid, new_collection_path)
    assert index.collection_path(uid) == new_collection_path
    assert len(index.all_collections) == 1


def test_unknown_collection(index: Index):
    assert index.collection("NOPE") is None
    assert index.collection_path("NOPE") is None


def test_all_collections_ordered_by_uid(index: Index, tmp_path):
    for uid in ("ZZZ", "AAA", "MMM"):
        index.upsert_collection(uid, tmp_path / uid)

    assert [c.uid for c in index.all_collections] == ["AAA", "MMM", "ZZZ"]
    assert index.all_collections[0].as_tuple() == (
        "AAA",
        (tmp_path / "AAA").as_posix(),
    )


def test_resolve_uid(index: Index, tmp_path: Path, make_identifier):
    uid = "COLL789"
    collection_path = tmp_path / "collection3"
    make_identifier(collection_path, uid)

    assert index.resolve_uid(collection_path) == uid


def test_resolve_uid_prefers_cache(index: Index, tmp_path: Path, make_identifier):
    collection_path = tmp_path / "collection3"
    make_identifier(collection_path, "CACHED")
    index.upsert_collection("CACHED", collection_path)

    assert index.resolve_uid(collection_path) == "CACHED"


def test_resolve_uid_not_found(index: Index, tmp_path: Path):
    collection_path = tmp_path / "collection4"
    collection_path.mkdir()

    with pytest.raises(InvalidCollectionError):
        index.resolve_uid(collection_path)


def test_resolve_path_from_cache(index: Index, tmp_path: Path, make_identifier):
    collection_path = tmp_path / "somewhere" / "coll"
    make_identifier(collection_path, "CACHED")
    index.upsert_collection("CACHED", collection_path)

    assert index.resolve_path("CACHED", search_paths=[tmp_path / "elsewhere"]) == (
        collection_path
    )


def test_resolve_path_searches_and_caches(index: Index, tmp_path: Path, make_identifier):
    collection_path = tmp_path / "a" / "coll"
    make_identifier(collection_path, "FOUND")

    assert index.collection("FOUND") is None
    assert index.resolve_path("FOUND") == collection_path
    assert index.collection_path("FOUND") == collection_path


def test_resolve_path_stale_cache(index: Index, tmp_path: Path, make_identifier):
    index.upsert_collection("MOVED", tmp_path / "old")
    new_path = tmp_path / "new"
    make_identifier(new_path, "MOVED")

    assert index.resolve_path("MOVED") == new_path
    assert index.collection_path("MOVED") == new_path


def test_resolve_path_not_found(index: Index):
    with pytest.raises(InvalidCollectionError):
        index.resolve_path("MISSING")
