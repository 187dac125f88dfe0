"""
Discovery of collections and their entries on the filesystem.

A collection is a directory containing an identifier file named
`.bamboost-collection-<UID>` (optionally with a `.yml` suffix). Entries are the
immediate subdirectories of a collection which contain a `data.h5` file.

Nothing in here raises on unreadable directories. Errors are logged and the affected
subtree or entry is skipped.
"""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Collection, Generator, Iterable, Optional

from simdex import SIMDEX_LOGGER
from simdex._typing import StrPath
from simdex.constants import (
    DEFAULT_MAX_DEPTH,
    HDF_DATA_FILE_NAME,
    IDENTIFIER_PREFIX,
    IDENTIFIER_SUFFIX,
)
from simdex.exceptions import InvalidCollectionError

__all__ = [
    "find_collections",
    "find_collection",
    "find_entries",
    "get_data_file_mtime",
    "get_identifier_filename",
    "read_uid",
    "uid_from_filename",
]

log = SIMDEX_LOGGER.getChild("Discovery")

_IDENTIFIER_RE = re.compile(
    rf"^{re.escape(IDENTIFIER_PREFIX)}(?P<uid>[^.]+)({re.escape(IDENTIFIER_SUFFIX)})?$"
)


def get_identifier_filename(uid: str) -> str:
    """Return the name of the identifier file written for a new collection."""
    return IDENTIFIER_PREFIX + uid + IDENTIFIER_SUFFIX


def uid_from_filename(name: str) -> Optional[str]:
    """Return the uid encoded in an identifier filename, or None if `name` is not an
    identifier file.

    Only the prefix decides whether a file is an identifier. The uid is the rest of
    the name with an optional `.yml` suffix removed.
    """
    if not name.startswith(IDENTIFIER_PREFIX):
        return None
    uid = name[len(IDENTIFIER_PREFIX) :]
    if uid.endswith(IDENTIFIER_SUFFIX):
        uid = uid[: -len(IDENTIFIER_SUFFIX)]
    return uid or None


def _walk(
    root: Path, max_depth: int, exclude: Collection[str]
) -> Generator[tuple[Path, list[str]], None, None]:
    """Walk `root` top-down and yield (directory, filenames) for every directory whose
    files are at most `max_depth` levels below root.

    Files directly inside root are at depth 1.
    """

    def _on_error(err: OSError) -> None:
        log.warning(f"Error reading directory entry: {err}")

    root_depth = len(root.parts)
    for base, dirnames, filenames in os.walk(root, topdown=True, onerror=_on_error):
        depth = len(Path(base).parts) - root_depth + 1
        # prune in-place so the walker never descends further
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d not in exclude)
        yield Path(base), sorted(filenames)


def find_collections(
    root: StrPath,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    exclude: Optional[Iterable[str]] = None,
) -> list[tuple[Path, str]]:
    """Search `root` for collection identifier files.

    Uniqueness of uids is not checked. If the same uid is found twice, both are
    returned and the last one wins once written to the index.

    Args:
        root: Directory to scan
        max_depth: Maximum depth of identifier files below root
        exclude: Directory names to skip

    Returns:
        List of (collection path, uid) tuples
    """
    root = Path(root).expanduser()
    log.debug(f"Scanning {root}")

    if not root.is_dir():
        log.warning(f"Path does not exist or is not a directory: {root}")
        return []

    found: list[tuple[Path, str]] = []
    for base, filenames in _walk(root, max_depth, frozenset(exclude or ())):
        for fname in filenames:
            uid = uid_from_filename(fname)
            if uid is None:
                continue
            if not base.joinpath(fname).is_file():
                continue
            found.append((base, uid))

    if not found:
        log.info(f"No collections found in {root}")
    return found


def find_collection(
    uid: str,
    root: StrPath,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    exclude: Optional[Iterable[str]] = None,
) -> Path:
    """Find the collection with UID under given root.

    Args:
        uid: UID to search for
        root: Root directory for search

    Raises:
        InvalidCollectionError: If no identifier file for `uid` is found
    """
    matches = [
        path
        for path, found_uid in find_collections(
            root, max_depth=max_depth, exclude=exclude
        )
        if found_uid == uid
    ]
    if not matches:
        raise InvalidCollectionError(f"Collection with UID '{uid}' not found")
    if len(matches) > 1:
        log.warning(
            f"Multiple collections found for {uid}. Using the first one.\n{matches}"
        )
    return matches[0]


def read_uid(path: StrPath) -> str:
    """Read the uid of the collection located at `path` from its identifier file.

    Raises:
        InvalidCollectionError: If path is not a directory or doesn't contain an
            identifier file.
    """
    path = Path(path)
    if not path.is_dir():
        raise InvalidCollectionError(f"Path '{path}' is not a directory")

    try:
        names = sorted(os.listdir(path))
    except OSError as e:
        raise InvalidCollectionError(f"Failed to read directory '{path}': {e}") from e

    for name in names:
        match = _IDENTIFIER_RE.match(name)
        if match:
            return match.group("uid")

    raise InvalidCollectionError(
        f"No collection file found in '{path}'. "
        f"Expected a file starting with '{IDENTIFIER_PREFIX}'"
    )


def find_entries(collection_path: StrPath) -> list[Path]:
    """Find entry directories within a collection directory.

    An entry is an immediate subdirectory containing a data file. Files and
    directories without a data file are ignored.

    Args:
        collection_path: The path to the collection directory to search.
    """
    collection_path = Path(collection_path)
    try:
        children = list(os.scandir(collection_path))
    except OSError as e:
        log.warning(f"Error reading directory '{collection_path}': {e}")
        return []

    entries: list[Path] = []
    for child in children:
        try:
            if not child.is_dir():
                continue
        except OSError as e:
            log.warning(f"Error getting file type for '{child.path}': {e}")
            continue
        entry_path = Path(child.path)
        if entry_path.joinpath(HDF_DATA_FILE_NAME).is_file():
            entries.append(entry_path)

    return sorted(entries, key=lambda p: p.name)


def get_data_file_mtime(entry_path: StrPath) -> Optional[datetime]:
    """Return the modification time of the data file of an entry as naive local time,
    or None if the file can't be accessed."""
    try:
        mtime = Path(entry_path).joinpath(HDF_DATA_FILE_NAME).stat().st_mtime
    except OSError:
        return None
    return datetime.fromtimestamp(mtime)
