"""
Entry points for the command line and other frontends.

Every function takes the index database file explicitly. The database is created
(including its tables) on first use.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Optional

from simdex import SIMDEX_LOGGER
from simdex import collection as _collection
from simdex._typing import StrPath
from simdex.constants import DEFAULT_MAX_DEPTH
from simdex.index import CommitPolicy, Index, ScanReport

__all__ = [
    "create_collection",
    "list_collections",
    "list_parameter_keys",
    "resolve_path",
    "scan",
]

log = SIMDEX_LOGGER.getChild("API")


def scan(
    root: StrPath,
    cache_path: StrPath,
    *,
    commit_policy: CommitPolicy | str = CommitPolicy.ALL_OR_NOTHING,
    max_depth: int = DEFAULT_MAX_DEPTH,
    exclude: Optional[Iterable[str]] = None,
    force_all: bool = False,
) -> ScanReport:
    """Find all collections below `root` and sync their entries into the index.

    Args:
        root: Directory to scan
        cache_path: Index database file
        commit_policy: What a store error discards, see `CommitPolicy`
        max_depth: Depth below root in which collections are found
        exclude: Directory names to skip
        force_all: Read all entries, even if unchanged since the last sync

    Raises:
        CacheError: If the index can't be opened or written.
    """
    index = Index(cache_path, max_depth=max_depth, exclude_dirs=exclude)
    try:
        return index.scan(root, commit_policy=commit_policy, force_all=force_all)
    finally:
        index.close()


def list_collections(cache_path: StrPath) -> list[tuple[str, str]]:
    """Return (uid, path) of all collections in the index, ordered by uid."""
    index = Index(cache_path)
    try:
        return [c.as_tuple() for c in index.all_collections]
    finally:
        index.close()


def list_parameter_keys(
    cache_path: StrPath, collection_uid: str
) -> list[tuple[str, str]]:
    """Return all parameter keys of a collection with an example value as JSON text.

    Keys are listed in order of first appearance. The example is the value of the
    first entry carrying the key.
    """
    index = Index(cache_path)
    try:
        examples = index.parameter_keys(collection_uid)
    finally:
        index.close()
    return [(key, json.dumps(value)) for key, value in examples.items()]


def create_collection(path: StrPath, uid: Optional[str] = None) -> str:
    """Create a new collection at `path` and return its uid.

    Raises:
        CollectionExistsError: If path is an existing non-empty directory or not a
            directory.
        OSError: On any other filesystem error.
    """
    return _collection.create_collection(path, uid)


def resolve_path(
    cache_path: StrPath,
    uid: str,
    search_paths: Optional[Iterable[StrPath]] = None,
) -> Path:
    """Return the path of a collection, looking it up in the index first and searching
    `search_paths` if the cached path is missing or stale.

    Raises:
        InvalidCollectionError: If the collection is not found.
    """
    index = Index(cache_path, search_paths=search_paths or [Path.cwd()])
    try:
        return index.resolve_path(uid)
    finally:
        index.close()
