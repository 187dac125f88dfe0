"""
Indexing of collections and their entries. SQLAlchemy is used to interact with the
SQLite database.

The index stores the path of every collection (characterized by its unique UID) and
the metadata and parameters of all entries. It is filled by scanning a directory for
collections (`Index.scan`) or by syncing a single known collection
(`Index.sync_collection`).

An entry is only read from its HDF5 file if the file has been modified after the
entry was last written to the index. Therefore repeated scans are cheap.

Database schema:
- `collections`: uids and corresponding paths.
- `simulations`: one row per entry with its metadata, parameters (JSON) and the time
  of the last sync.

Only one process should write to an index file at a time. Concurrent scans of the
same database file are not guarded against.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generator,
    Iterable,
    Mapping,
    Optional,
    Sequence,
)

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from typing_extensions import Concatenate

from simdex import SIMDEX_LOGGER
from simdex._typing import _P, _T, ParametersT, StrPath
from simdex.constants import (
    DEFAULT_MAX_DEPTH,
    IDENTIFIER_PREFIX,
    IDENTIFIER_SUFFIX,
)
from simdex.discovery import (
    find_collection,
    find_collections,
    find_entries,
    get_data_file_mtime,
    read_uid,
)
from simdex.entry import EntryMetadata, load_entry
from simdex.exceptions import CacheError, EntryDecodeError, InvalidCollectionError
from simdex.index import store

if TYPE_CHECKING:
    from simdex._config import IndexOptions

log = SIMDEX_LOGGER.getChild("Database")


class CommitPolicy(str, Enum):
    """How store errors during a scan affect the written data.

    ALL_OR_NOTHING: A store error aborts the scan and discards everything written
        during it. The index stays in its state before the scan.
    PER_COLLECTION: Each collection is written within a savepoint. A store error only
        discards the data of the collection it occurred in; the scan continues.
    """

    ALL_OR_NOTHING = "all-or-nothing"
    PER_COLLECTION = "per-collection"


@dataclass
class ScanReport:
    """Outcome of a scan or a collection sync."""

    collections: list[tuple[str, Path]] = field(default_factory=list)
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    failed_collections: list[str] = field(default_factory=list)

    def summary(self) -> str:
        s = (
            f"{len(self.collections)} collections, {self.synced} entries synced, "
            f"{self.skipped} unchanged, {self.failed} failed"
        )
        if self.failed_collections:
            s += f" (collections rolled back: {', '.join(self.failed_collections)})"
        return s


def _sql_transaction(
    func: Callable[Concatenate[Index, _P], _T],
) -> Callable[Concatenate[Index, _P], _T]:
    """Decorator to run the method within a transaction.

    Args:
        func: The function to decorate.
    """

    @wraps(func)
    def inner(self: Index, *args: _P.args, **kwargs: _P.kwargs) -> Any:
        with self.sql_transaction():
            return func(self, *args, **kwargs)

    return inner


def _validate_path(path: Path, uid: str) -> bool:
    return path.is_dir() and any(
        path.joinpath(f"{IDENTIFIER_PREFIX}{uid}{suffix}").is_file()
        for suffix in ("", IDENTIFIER_SUFFIX)
    )


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class Index:
    """API for indexing collections and their entries.

    Usage:
        >>> from simdex.index import Index
        >>> index = Index("~/.local/share/simdex/simdex.sqlite")

        Scan a directory for collections and sync all their entries:
        >>> index.scan("~/simulations")

        Resolve the path of a collection:
        >>> index.resolve_path(<collection-uid>)

        Get an entry from its collection uid and name:
        >>> index.entry(<collection-uid>, <entry-name>)

    Args:
        sql_file: The SQLite database file. It is created if it does not exist. Use
            ":memory:" for a transient index.
        search_paths: Directories searched when a collection is not (validly) cached.
        max_depth: Depth below a search root in which identifier files are found.
        exclude_dirs: Directory names to skip while searching.
        commit_policy: Default commit policy of `scan`.

    Raises:
        CacheError: If the database can't be opened or initialized.
    """

    _engine: Engine
    _sm: Callable[..., Session]
    _s: Session

    def __init__(
        self,
        sql_file: StrPath,
        *,
        search_paths: Optional[Iterable[StrPath]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        exclude_dirs: Optional[Iterable[str]] = None,
        commit_policy: CommitPolicy | str = CommitPolicy.ALL_OR_NOTHING,
    ) -> None:
        self._file = str(sql_file)
        """The path to the SQLite database file."""

        self.search_paths: list[Path] = [Path(p) for p in search_paths or ()]
        """Paths searched for collections missing in the index."""

        self.max_depth = max_depth
        self.exclude_dirs = frozenset(exclude_dirs or ())
        self.commit_policy = CommitPolicy(commit_policy)
        """Default commit policy of `scan`."""

        self._url = f"sqlite:///{self._file}"
        """The URL to the SQLite database file."""

        try:
            self._initialize(self._url)
        except SQLAlchemyError as e:
            log.error(f"Failed to open index database {self._file}: {e}")
            raise CacheError(
                f"Failed to open index database: {e}", file=self._file
            ) from e

    @classmethod
    def from_options(cls, options: IndexOptions) -> Index:
        """Create an index from the `[index]` table of a loaded configuration."""
        return cls(
            options.ensure_local_dir(),
            search_paths=options.searchPaths,
            max_depth=options.maxDepth,
            exclude_dirs=options.excludeDirs,
            commit_policy=options.commitPolicy,
        )

    def _initialize(self, url: str) -> None:
        self._engine = create_engine(
            url,
            json_serializer=store.json_serializer,
            json_deserializer=store.json_deserializer,
        )

        # pysqlite must not begin transactions itself for SAVEPOINT to work
        def _on_connect(dbapi_con, _con_record):
            dbapi_con.isolation_level = None

        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

        event.listen(self._engine, "connect", _on_connect)
        event.listen(self._engine, "begin", _on_begin)

        store.create_all(self._engine)
        self._sm = sessionmaker(
            bind=self._engine, autobegin=False, expire_on_commit=False
        )
        self._s = self._sm()

    @property
    def file(self) -> str:
        return self._file

    def close(self) -> None:
        """Close the session and dispose of the engine."""
        self._s.close()
        self._engine.dispose()

    @contextmanager
    def sql_transaction(self) -> Generator[Session, None, None]:
        """Context manager for a SQL transaction.

        If no transaction is active, a new transaction is started and committed at the
        end. If a transaction is active, the current session is used and errors
        propagate to the outermost transaction.

        Raises:
            CacheError: If a database error occurs. The transaction is rolled back.

        Usage:
            >>> with index.sql_transaction() as s:
            ...     s.execute(...)
        """
        if self._s.in_transaction():
            yield self._s
            return

        try:
            self._s.begin()
            yield self._s
            self._s.commit()
        except SQLAlchemyError as e:
            log.warning(f"Caching transaction failed: {e}")
            self._s.rollback()
            raise CacheError(
                f"Index transaction failed: {e}", file=self._file
            ) from e
        finally:
            self._s.close()

    # ------------------------------------------------
    # Sync
    # ------------------------------------------------

    def scan(
        self,
        root: StrPath,
        *,
        commit_policy: Optional[CommitPolicy | str] = None,
        force_all: bool = False,
    ) -> ScanReport:
        """Scan a directory for collections and sync all their entries.

        Everything is written in a single transaction which is committed at the end.
        Entries that can't be read are logged and skipped.

        Args:
            root: Directory to scan for collections
            commit_policy: What a store error discards, see `CommitPolicy`. Defaults
                to the commit policy of the index.
            force_all: Read all entries, even if unchanged since the last sync

        Raises:
            CacheError: On a store error with `CommitPolicy.ALL_OR_NOTHING`, or if the
                final commit fails.
        """
        commit_policy = CommitPolicy(commit_policy or self.commit_policy)
        report = ScanReport()

        found = find_collections(
            root, max_depth=self.max_depth, exclude=self.exclude_dirs
        )
        log.info(f"Found {len(found)} collections in {root}")

        with self.sql_transaction():
            for c_path, c_uid in found:
                report.collections.append((c_uid, c_path))
                if commit_policy is CommitPolicy.ALL_OR_NOTHING:
                    self._sync_found_collection(c_uid, c_path, report, force_all)
                    continue

                partial = ScanReport()
                try:
                    with self._s.begin_nested():
                        self._sync_found_collection(c_uid, c_path, partial, force_all)
                except SQLAlchemyError as e:
                    log.error(f"Collection {c_uid} rolled back: {e}")
                    report.failed_collections.append(c_uid)
                    report.failed += partial.synced + partial.failed
                    report.skipped += partial.skipped
                else:
                    report.synced += partial.synced
                    report.skipped += partial.skipped
                    report.failed += partial.failed

        log.info(f"Sync complete: {report.summary()}")
        return report

    @_sql_transaction
    def sync_collection(
        self,
        uid: str,
        path: Optional[StrPath] = None,
        *,
        force_all: bool = False,
    ) -> ScanReport:
        """Sync the entries of a single collection with the file system.

        Args:
            uid: UID of the collection
            path: Path of the collection. Resolved from the index if not given.
            force_all: Read all entries, even if unchanged since the last sync
        """
        collection_path = Path(path) if path else self.resolve_path(uid)
        report = ScanReport()
        report.collections.append((uid, collection_path))
        self._sync_found_collection(uid, collection_path, report, force_all)
        log.info(f"Sync of {uid} complete: {report.summary()}")
        return report

    def _sync_found_collection(
        self, uid: str, path: Path, report: ScanReport, force_all: bool
    ) -> None:
        log.info(f"Collection {uid}: {path}")
        self.upsert_collection(uid, path)

        for entry_path in find_entries(path):
            name = entry_path.name
            mtime = get_data_file_mtime(entry_path)
            if mtime is None:
                log.warning(f"Failed to get mtime for entry {entry_path}")
                report.failed += 1
                continue

            last_sync_time = self.get_last_sync_time(uid, name)
            if not force_all and last_sync_time is not None and mtime <= last_sync_time:
                log.debug(f"Unchanged entry {name}, skipping")
                report.skipped += 1
                continue

            try:
                metadata, parameters = load_entry(entry_path)
            except EntryDecodeError as e:
                log.warning(f"Failed to read entry: {e}")
                report.failed += 1
                continue

            entry_id = self.upsert_entry(uid, name, metadata, parameters)
            log.info(f"Synced entry {name} [{entry_id}]")
            report.synced += 1

    # ------------------------------------------------
    # Writes
    # ------------------------------------------------

    @_sql_transaction
    def upsert_collection(self, uid: str, path: StrPath) -> None:
        """Cache a collection in the index. An existing path for `uid` is replaced.

        Args:
            uid: UID of the collection
            path: Path of the collection
        """
        record = {"uid": uid, "path": Path(path).absolute().as_posix()}
        self._s.execute(store.collections_upsert_stmt(record))

    @_sql_transaction
    def upsert_entry(
        self,
        collection_uid: str,
        name: str,
        metadata: EntryMetadata | Mapping[str, Any],
        parameters: Optional[ParametersT] = None,
    ) -> int:
        """Cache an entry of a collection.

        Inserts a new row or updates every field of the existing row for
        (collection_uid, name). The sync time is set to now.

        Args:
            collection_uid: UID of the collection
            name: Name of the entry
            metadata: Metadata of the entry
            parameters: Parameters of the entry

        Returns:
            The id of the row.
        """
        if isinstance(metadata, EntryMetadata):
            metadata = metadata.as_dict()

        payload: dict[str, Any] = {
            **metadata,
            "collection_uid": collection_uid,
            "name": name,
            "parameters": dict(parameters or {}),
            "last_sync_time": datetime.now(),
        }
        if isinstance(payload.get("created_at"), datetime):
            payload["created_at"] = _to_naive_utc(payload["created_at"])

        return self._s.execute(store.simulations_upsert_stmt(payload)).scalar_one()

    # ------------------------------------------------
    # Queries
    # ------------------------------------------------

    @_sql_transaction
    def get_last_sync_time(self, collection_uid: str, name: str) -> Optional[datetime]:
        """Return the time an entry was last written to the index, or None if it was
        never synced."""
        return store.fetch_last_sync_time(self._s, collection_uid, name)

    @property
    @_sql_transaction
    def all_collections(self) -> Sequence[store.CollectionRecord]:
        """Return all collections in the index."""
        return store.fetch_collections(self._s)

    @_sql_transaction
    def collection(self, uid: str) -> store.CollectionRecord | None:
        """Return a collection (including its entries) from the index.

        Args:
            uid: UID of the collection
        """
        return store.fetch_collection(self._s, uid)

    @_sql_transaction
    def entry(self, collection_uid: str, name: str) -> store.EntryRecord | None:
        """Return an entry from the index.

        Args:
            collection_uid: UID of the collection
            name: Name of the entry
        """
        return store.fetch_entry(self._s, collection_uid, name)

    @_sql_transaction
    def entries(self, collection_uid: str) -> list[store.EntryRecord]:
        """Return all entries of a collection, in insertion order."""
        return store.fetch_entries(self._s, collection_uid)

    @_sql_transaction
    def parameter_keys(self, collection_uid: str) -> dict[str, Any]:
        """Return every parameter key used in a collection with an example value.

        The example is the value of the first entry (in insertion order) carrying the
        key.
        """
        examples: dict[str, Any] = {}
        for parameters in store.fetch_parameter_sets(self._s, collection_uid):
            for key, value in parameters.items():
                examples.setdefault(key, value)
        return examples

    @_sql_transaction
    def collection_path(self, uid: str) -> Optional[Path]:
        """Return the cached path of a collection, or None if the uid is unknown."""
        collection = store.fetch_collection(self._s, uid)
        return Path(collection.path) if collection else None

    @_sql_transaction
    def resolve_path(
        self,
        uid: str,
        *,
        search_paths: Optional[Iterable[StrPath]] = None,
    ) -> Path:
        """Resolve and return the path of a collection from its UID.

        The cached path is used if it still contains the identifier file. Otherwise
        the search paths are scanned and the index is updated with the found path.

        Args:
            uid: UID of the collection
            search_paths: Paths to search for the collection. Defaults to the search
                paths of the index.

        Raises:
            InvalidCollectionError: If the collection is not found
        """
        stored_path = self.collection_path(uid)
        if stored_path and _validate_path(stored_path, uid):
            return stored_path

        log.debug(f"No or invalid path found in cache for collection <{uid}>.")

        roots = [Path(p) for p in search_paths] if search_paths else self.search_paths
        for root_dir in roots:
            log.debug(f"Searching for collection <{uid}> in <{root_dir}>")
            try:
                found_path = find_collection(
                    uid, root_dir, max_depth=self.max_depth, exclude=self.exclude_dirs
                )
            except InvalidCollectionError:
                continue
            self.upsert_collection(uid, found_path)
            return found_path

        raise InvalidCollectionError(f"Collection with UID '{uid}' was not found.")

    @_sql_transaction
    def resolve_uid(self, path: StrPath) -> str:
        """Resolve the UID of the collection at `path`.

        Raises:
            InvalidCollectionError: If no collection is found at the given path.
        """
        path = Path(path).absolute()
        cached_uid = store.fetch_collection_uid_by_path(self._s, path.as_posix())
        if cached_uid and _validate_path(path, cached_uid):
            return cached_uid

        log.debug(f"No or invalid uid found in cache for collection <{path}>.")
        return read_uid(path)
