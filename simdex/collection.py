"""
Creation of new collections.

A collection is created by writing its identifier file into an empty directory. The
identifier file is a small YAML document with the uid, the creation time and, if a git
identity is configured, the author.
"""

from __future__ import annotations

import subprocess
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

from simdex import SIMDEX_LOGGER
from simdex._typing import StrPath
from simdex.discovery import get_identifier_filename
from simdex.exceptions import CollectionExistsError

__all__ = [
    "Author",
    "create_collection",
    "create_identifier_file",
    "generate_uid",
    "get_author",
]

log = SIMDEX_LOGGER.getChild("Collection")


@dataclass(frozen=True)
class Author:
    name: str
    email: str


def _git_config(key: str) -> Optional[str]:
    try:
        process = subprocess.run(
            ["git", "config", "--get", key],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            check=False,
        )
    except OSError:
        return None
    value = process.stdout.strip()
    return value or None


def get_author() -> Optional[Author]:
    """Return the git identity (user.name, user.email) of the current user, or None
    if git is not available or the identity is incomplete."""
    name = _git_config("user.name")
    email = _git_config("user.email")
    if name is None or email is None:
        return None
    return Author(name=name, email=email)


def generate_uid(length: int = 10) -> str:
    """Generate a new random collection uid."""
    return uuid.uuid4().hex[:length].upper()


def create_identifier_file(
    path: StrPath, uid: str, *, author: Optional[Author] = None
) -> Path:
    """Write the identifier file of a collection.

    Args:
        path: Path to the collection directory
        uid: UID of the collection
        author: Author recorded in the file. Omitted if None.

    Returns:
        The path of the identifier file.
    """
    content: dict[str, Any] = {
        "uid": uid,
        "created": datetime.now().astimezone().isoformat(),
    }
    if author is not None:
        content["author"] = asdict(author)

    identifier_file = Path(path).joinpath(get_identifier_filename(uid))
    with identifier_file.open("w") as f:
        yaml.safe_dump(content, f, sort_keys=False)
    return identifier_file


def create_collection(path: StrPath, uid: Optional[str] = None) -> str:
    """Create a new collection at `path`.

    The directory is created if it doesn't exist. An existing directory must be
    empty.

    Args:
        path: Directory of the new collection
        uid: UID of the collection. A new one is generated if not given.

    Returns:
        The uid of the collection.

    Raises:
        CollectionExistsError: If path exists and is not a directory, or is a
            non-empty directory. Nothing is written in this case.
        OSError: If the directory or the identifier file can't be written.
    """
    path = Path(path)
    uid = uid or generate_uid()

    if path.exists():
        if not path.is_dir():
            raise CollectionExistsError(path, "path exists and is not a directory")
        if any(path.iterdir()):
            raise CollectionExistsError(path, "directory exists and is not empty")
    else:
        path.mkdir(parents=True)
        log.info(f"Initialized directory for collection at {path}")

    create_identifier_file(path, uid, author=get_author())
    return uid
