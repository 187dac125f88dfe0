"""Module for indexing collections of simulation output.

Uses a caching mechanism using SQLAlchemy and an SQLite database to store
information about collections and their entries.

Usage:
    Create an instance of the `Index` class and use its methods to interact
    with the index.

    >>> from simdex.index import Index
    >>> index = Index("index.sqlite")

    Scan a directory for collections and sync their entries:

    >>> index.scan("~/simulations")

    Resolve the path of a collection:

    >>> index.resolve_path(<collection-uid>)

Classes:
    Index: API for indexing collections and entries.
    CommitPolicy: What a store error during a scan discards.
    ScanReport: Counts of synced, unchanged and failed entries of a scan.
"""

from .base import CommitPolicy as CommitPolicy
from .base import Index as Index
from .base import ScanReport as ScanReport
from .schema import CollectionRecord as CollectionRecord
from .schema import EntryRecord as EntryRecord
