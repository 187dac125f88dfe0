"""SQLAlchemy Core helper utilities for the simdex index database."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import RowMapping, Table, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session
from sqlalchemy.sql.dml import Insert, ReturningInsert

from simdex import SIMDEX_LOGGER

from .schema import (
    CollectionRecord,
    EntryRecord,
    collections_table,
    create_all,
    simulations_table,
)

__all__ = [
    "collections_table",
    "simulations_table",
    "create_all",
    "collections_upsert_stmt",
    "simulations_upsert_stmt",
    "fetch_collection",
    "fetch_collections",
    "fetch_collection_uid_by_path",
    "fetch_entry",
    "fetch_entries",
    "fetch_last_sync_time",
    "fetch_parameter_sets",
    "json_serializer",
    "json_deserializer",
]

log = SIMDEX_LOGGER.getChild(__name__)

# ------------------------------------------------
# JSON helpers for the engine configuration
# ------------------------------------------------


def json_serializer(value: Any) -> str:
    """Convert a value to a compact JSON string."""

    return json.dumps(value, cls=SqliteJSONEncoder, separators=(",", ":"))


def json_deserializer(value: str) -> Any:
    """Convert a JSON string to a Python value."""

    return json.loads(value)


class SqliteJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy scalars and arrays."""

    def default(self, obj: Any) -> Any:
        import numpy as np

        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (np.generic, np.number)):
            return obj.item()

        return super().default(obj)


# ------------------------------------------------
# Builders for dataclasses from database rows
# ------------------------------------------------


def _build_entry(row: RowMapping) -> EntryRecord:
    return EntryRecord(
        id=row["id"],
        collection_uid=row["collection_uid"],
        name=row["name"],
        created_at=row["created_at"],
        description=row["description"],
        status=row["status"],
        submitted=bool(row["submitted"]),
        parameters=dict(row["parameters"] or {}),
        last_sync_time=row["last_sync_time"],
    )


def _build_collection(session: Session, row: RowMapping) -> CollectionRecord:
    return CollectionRecord(
        uid=row["uid"],
        path=row["path"],
        entries=fetch_entries(session, row["uid"]),
    )


# ------------------------------------------------
# Upsert statement factories
# ------------------------------------------------


def collections_upsert_stmt(
    data: Sequence[Mapping[str, Any]] | Mapping[str, Any],
) -> Insert:
    """Create an upsert statement for collections.

    Args:
        data: A single dictionary or a sequence of dictionaries representing the
            collections to be inserted or updated.
    """
    payload = _normalize_payload(data, collections_table)
    update_columns = _collect_update_columns(payload, {"uid"})

    stmt = insert(collections_table).values(payload)
    set_clause = {column: getattr(stmt.excluded, column) for column in update_columns}
    return stmt.on_conflict_do_update(
        index_elements=[collections_table.c.uid], set_=set_clause
    )


def simulations_upsert_stmt(data: Mapping[str, Any]) -> ReturningInsert[Any]:
    """Create an upsert statement for a single entry.

    All columns given in `data` (except the id) are overwritten if the pair
    (collection_uid, name) exists already.

    Returns:
        A SQLAlchemy Insert statement with a RETURNING clause for the row id.
    """
    payload = _normalize_payload(data, simulations_table)
    update_columns = _collect_update_columns(payload, {"id", "collection_uid", "name"})

    stmt = insert(simulations_table).values(payload)
    set_clause = {column: getattr(stmt.excluded, column) for column in update_columns}
    stmt = stmt.on_conflict_do_update(
        index_elements=[simulations_table.c.collection_uid, simulations_table.c.name],
        set_=set_clause,
    )
    return stmt.returning(simulations_table.c.id)


def _normalize_payload(
    data: Sequence[Mapping[str, Any]] | Mapping[str, Any],
    table: Table,
) -> Sequence[dict[str, Any]] | dict[str, Any]:
    """Drop keys which are not columns of the table.

    Args:
        data: A single dictionary or a sequence of dictionaries.
        table: The target table.

    Returns:
        A dictionary if a single record was given, a list of dictionaries otherwise.
    """
    valid_keys = set(table.c.keys())
    if isinstance(data, Mapping):
        return {key: data[key] for key in data.keys() & valid_keys}
    return [{key: record[key] for key in record.keys() & valid_keys} for record in data]


def _collect_update_columns(
    payload: Sequence[dict[str, Any]] | dict[str, Any],
    excluded_keys: set[str],
) -> set[str]:
    """Collect the set of columns to be updated in an upsert operation.

    Args:
        payload: The normalized payload.
        excluded_keys: Keys never updated (e.g., primary keys).
    """
    if isinstance(payload, dict):
        keys = set(payload.keys())
    else:
        keys = set().union(*(record.keys() for record in payload))
    return keys - excluded_keys


# ------------------------------------------------
# Fetch helpers
# ------------------------------------------------


def fetch_collection(session: Session, uid: str) -> CollectionRecord | None:
    row = (
        session.execute(select(collections_table).where(collections_table.c.uid == uid))
        .mappings()
        .first()
    )
    if row is None:
        return None
    return _build_collection(session, row)


def fetch_collections(session: Session) -> list[CollectionRecord]:
    rows = (
        session.execute(select(collections_table).order_by(collections_table.c.uid))
        .mappings()
        .all()
    )
    return [_build_collection(session, row) for row in rows]


def fetch_collection_uid_by_path(session: Session, path: str) -> str | None:
    return session.execute(
        select(collections_table.c.uid).where(collections_table.c.path == path)
    ).scalar()


def fetch_entry(session: Session, collection_uid: str, name: str) -> EntryRecord | None:
    row = (
        session.execute(
            select(simulations_table).where(
                simulations_table.c.collection_uid == collection_uid,
                simulations_table.c.name == name,
            )
        )
        .mappings()
        .first()
    )
    if row is None:
        return None
    return _build_entry(row)


def fetch_entries(session: Session, collection_uid: str) -> list[EntryRecord]:
    rows = (
        session.execute(
            select(simulations_table)
            .where(simulations_table.c.collection_uid == collection_uid)
            .order_by(simulations_table.c.id)
        )
        .mappings()
        .all()
    )
    return [_build_entry(row) for row in rows]


def fetch_last_sync_time(
    session: Session, collection_uid: str, name: str
) -> datetime | None:
    return session.execute(
        select(simulations_table.c.last_sync_time).where(
            simulations_table.c.collection_uid == collection_uid,
            simulations_table.c.name == name,
        )
    ).scalar()


def fetch_parameter_sets(session: Session, collection_uid: str) -> list[dict[str, Any]]:
    """Return the parameters of all entries in a collection, in row order."""
    rows = session.execute(
        select(simulations_table.c.parameters)
        .where(simulations_table.c.collection_uid == collection_uid)
        .order_by(simulations_table.c.id)
    ).scalars()
    return [dict(parameters or {}) for parameters in rows]

