import json
import os
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import h5py
import pytest

from simdex.constants import HDF_DATA_FILE_NAME, IDENTIFIER_PREFIX, PATH_PARAMETERS
from simdex.index import Index

_MISSING = object()


def tagged_datetime(value: str) -> str:
    return json.dumps({"__type__": "datetime", "__value__": value})


def write_entry(
    collection_path: Path,
    name: str,
    *,
    created_at: Any = tagged_datetime("2024-01-01T00:00:00"),
    description: Any = "first run",
    status: Any = "done",
    submitted: Any = _MISSING,
    parameters: Optional[Mapping[str, Any]] = None,
    with_parameters_group: bool = True,
) -> Path:
    """Create an entry directory with a data file. Pass `None` for a metadata
    attribute to leave it out."""
    entry_path = collection_path / name
    entry_path.mkdir(parents=True, exist_ok=True)

    with h5py.File(entry_path / HDF_DATA_FILE_NAME, "w") as f:
        for key, value in (
            ("created_at", created_at),
            ("description", description),
            ("status", status),
        ):
            if value is not None:
                f.attrs[key] = value
        if submitted is not _MISSING:
            f.attrs["submitted"] = submitted
        if with_parameters_group:
            grp = f.create_group(PATH_PARAMETERS)
            for key, value in (parameters or {}).items():
                grp.attrs[key] = value

    return entry_path


def write_identifier(collection_path: Path, uid: str, suffix: str = "") -> Path:
    collection_path.mkdir(parents=True, exist_ok=True)
    identifier = collection_path / f"{IDENTIFIER_PREFIX}{uid}{suffix}"
    identifier.touch()
    return identifier


def bump_mtime(entry_path: Path, seconds: float = 60.0) -> None:
    """Move the mtime of an entry's data file into the future."""
    data_file = entry_path / HDF_DATA_FILE_NAME
    stat = data_file.stat()
    os.utime(data_file, (stat.st_atime + seconds, stat.st_mtime + seconds))


@pytest.fixture
def make_entry() -> Callable[..., Path]:
    return write_entry


@pytest.fixture
def make_identifier() -> Callable[..., Path]:
    return write_identifier


@pytest.fixture
def touch_entry() -> Callable[..., None]:
    return bump_mtime


@pytest.fixture
def datetime_attr() -> Callable[[str], str]:
    return tagged_datetime


@pytest.fixture
def index():
    index = Index(":memory:")
    yield index
    index.close()


@pytest.fixture
def db_file(tmp_path: Path) -> Path:
    return tmp_path / "simdex.sqlite"


@pytest.fixture
def scenario_root(tmp_path: Path) -> Path:
    """A collection `ABC123` with a single entry `run1`."""
    root = tmp_path / "R"
    write_identifier(root, "ABC123")
    write_entry(root, "run1", submitted=True, parameters={"steps": 100})
    return root
