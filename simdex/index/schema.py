"""SQLAlchemy Core schema definitions for the simdex index database."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)

from simdex._typing import ParametersT
from simdex.constants import TABLENAME_COLLECTIONS, TABLENAME_SIMULATIONS


# ------------------------------------------------
# Dataclasses representing the loaded records
# ------------------------------------------------
@dataclass(frozen=True)
class EntryRecord:
    id: int
    collection_uid: str
    name: str
    created_at: datetime | None
    """Creation time of the entry, naive UTC."""
    description: str | None
    status: str | None
    submitted: bool
    parameters: ParametersT = field(default_factory=dict)
    last_sync_time: datetime | None = None
    """Wall-clock (local) time of the last write of this row."""


@dataclass(frozen=True)
class CollectionRecord:
    uid: str
    path: str
    entries: list[EntryRecord] = field(default_factory=list, repr=False)

    def as_tuple(self) -> tuple[str, str]:
        """Return the collection as a tuple of (uid, path)."""
        return self.uid, self.path


# ------------------------------------------------
# SQL table definitions
# these should match the dataclasses above
# ------------------------------------------------
metadata = MetaData()


def create_all(engine) -> None:
    """Create all tables defined in this module."""

    metadata.create_all(engine, checkfirst=True)


collections_table = Table(
    TABLENAME_COLLECTIONS,
    metadata,
    Column("uid", String, primary_key=True),
    Column("path", String, nullable=False),
)


# Entries reference their collection by uid only (no foreign key). An entry row
# outlives a collection row that is rewritten with a new path.
simulations_table = Table(
    TABLENAME_SIMULATIONS,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("collection_uid", String, nullable=False),
    Column("name", String, nullable=False),
    Column("created_at", DateTime, nullable=True),
    Column("description", String, nullable=True),
    Column("status", String, nullable=True),
    Column("submitted", Boolean, nullable=False, default=False, server_default="0"),
    Column("parameters", JSON, nullable=False, default=dict, server_default="{}"),
    Column("last_sync_time", DateTime, nullable=True),
    UniqueConstraint("collection_uid", "name", name="uix_collection_name"),
    sqlite_autoincrement=True,
)
