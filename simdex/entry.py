"""
Reading of entry metadata and parameters from the HDF5 data file.

The root group of `data.h5` carries the metadata as attributes (`created_at`,
`description`, `status`, `submitted`). The run parameters are the attributes of the
`.parameters` group.

Values are decoded using the HDF5 type stored with each attribute. Only if that type
does not tell us anything useful (opaque or object dtypes) we fall back to probing the
value: integer first, then float, then string. Anything else is dropped.
"""

from __future__ import annotations

import json
import numbers
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import h5py
import numpy as np

from simdex import SIMDEX_LOGGER
from simdex._typing import ParametersT, ParameterValue, StrPath
from simdex.constants import (
    ATTR_CREATED_AT,
    ATTR_DESCRIPTION,
    ATTR_STATUS,
    ATTR_SUBMITTED,
    HDF_DATA_FILE_NAME,
    PATH_PARAMETERS,
)
from simdex.exceptions import EntryDecodeError

__all__ = [
    "EPOCH",
    "EntryMetadata",
    "decode_attribute",
    "load_entry",
    "parse_datetime_field",
    "probe_value",
]

log = SIMDEX_LOGGER.getChild("Entry")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
"""Substituted for `created_at` values that can't be parsed."""


@dataclass(frozen=True)
class EntryMetadata:
    created_at: datetime
    """Creation time (UTC)."""
    description: str
    status: str
    submitted: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at,
            "description": self.description,
            "status": self.status,
            "submitted": self.submitted,
        }


def parse_datetime_field(value: str) -> Optional[datetime]:
    """Parse a tagged datetime attribute.

    The attribute is a JSON object `{"__type__": "datetime", "__value__": "<iso>"}`.
    The value must carry a UTC offset. A value without one is interpreted as UTC.

    Returns:
        The timestamp in UTC, or None if the value is not a valid tagged datetime.
    """
    try:
        wrapped = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return None

    if not isinstance(wrapped, dict) or wrapped.get("__type__") != "datetime":
        return None
    raw = wrapped.get("__value__")
    if not isinstance(raw, str):
        return None

    for candidate in (raw, f"{raw}+00:00"):
        try:
            dt = datetime.fromisoformat(candidate)
            if dt.tzinfo is None:
                continue
            # shifting to UTC can leave the range of year 1 to 9999
            return dt.astimezone(timezone.utc)
        except (ValueError, OverflowError):
            continue
    return None


def probe_value(value: Any) -> Optional[ParameterValue]:
    """Interpret a value of unknown type, trying integer, float and string in this
    order.

    A real number with an integral value is returned as `int`, so `3.0` becomes `3`.
    Booleans are not accepted as integers. Returns None if no interpretation fits.
    """
    if isinstance(value, np.ndarray):
        if value.shape != ():
            return None
        value = value[()]
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        as_float = float(value)
        if as_float.is_integer():
            return int(as_float)
        return as_float
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(value, str):
        return value
    return None


def decode_attribute(value: Any, dtype: Optional[np.dtype]) -> Optional[ParameterValue]:
    """Decode an attribute value using the HDF5 type it is stored with.

    Args:
        value: The attribute value as returned by h5py
        dtype: The stored dtype (`AttributeManager.get_id(name).dtype`), or None if
            unknown

    Returns:
        The decoded scalar, or None if the type is not supported.
    """
    if isinstance(value, h5py.Empty):
        return None
    if dtype is None:
        return probe_value(value)

    if isinstance(value, np.ndarray) and value.shape != ():
        return None

    if h5py.check_string_dtype(dtype) is not None or dtype.kind in "SU":
        if isinstance(value, np.ndarray):
            value = value[()]
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return None
        return str(value)

    # numpy bools are stored as an HDF5 enum, h5py reports them as kind "b"
    if dtype.kind == "b":
        return None
    if dtype.kind in "iu":
        return int(value)
    if dtype.kind == "f":
        return float(value)
    if dtype.kind in "OV":
        return probe_value(value)
    return None


def _attr_dtype(attrs: h5py.AttributeManager, name: str) -> Optional[np.dtype]:
    try:
        return attrs.get_id(name).dtype
    except (KeyError, OSError, TypeError):
        return None


def _read_string(attrs: h5py.AttributeManager, name: str, path: Path) -> str:
    try:
        value = attrs[name]
    except KeyError:
        raise EntryDecodeError(path, f"Missing attribute '{name}'")
    except (OSError, TypeError, ValueError) as e:
        raise EntryDecodeError(path, f"Can't read attribute '{name}': {e}") from e

    decoded = decode_attribute(value, _attr_dtype(attrs, name))
    if not isinstance(decoded, str):
        raise EntryDecodeError(path, f"Attribute '{name}' is not a string")
    return decoded


def _read_bool(attrs: h5py.AttributeManager, name: str) -> bool:
    try:
        value = attrs[name]
    except (KeyError, OSError, TypeError, ValueError):
        return False
    if isinstance(value, np.ndarray):
        if value.shape != ():
            return False
        value = value[()]
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    return False


def _read_parameters(group: h5py.Group) -> ParametersT:
    parameters: ParametersT = {}
    for name in group.attrs.keys():
        try:
            value = group.attrs[name]
            decoded = decode_attribute(value, _attr_dtype(group.attrs, name))
        except (OSError, TypeError, ValueError, OverflowError) as e:
            log.debug(f"Skipping unreadable parameter '{name}': {e}")
            continue
        if decoded is None:
            log.debug(f"Skipping parameter '{name}' of unsupported type")
            continue
        parameters[name] = decoded
    return parameters


def load_entry(entry_path: StrPath) -> tuple[EntryMetadata, ParametersT]:
    """Read metadata and parameters of an entry from its data file.

    Args:
        entry_path: Directory of the entry

    Raises:
        EntryDecodeError: If the data file is missing or unreadable, if a required
            attribute is missing, or if the parameters group is missing.
    """
    entry_path = Path(entry_path)
    h5_path = entry_path.joinpath(HDF_DATA_FILE_NAME)

    try:
        file = h5py.File(h5_path, "r")
    except (OSError, ValueError) as e:
        raise EntryDecodeError(entry_path, f"Can't open data file: {e}") from e

    with file:
        root = file["/"]
        created_at_raw = _read_string(root.attrs, ATTR_CREATED_AT, entry_path)
        created_at = parse_datetime_field(created_at_raw)
        if created_at is None:
            log.warning(
                f"Failed to parse created_at of {entry_path}: {created_at_raw!r}"
            )
            created_at = EPOCH

        metadata = EntryMetadata(
            created_at=created_at,
            description=_read_string(root.attrs, ATTR_DESCRIPTION, entry_path),
            status=_read_string(root.attrs, ATTR_STATUS, entry_path),
            submitted=_read_bool(root.attrs, ATTR_SUBMITTED),
        )

        try:
            params_group = file.get(PATH_PARAMETERS)
        except (OSError, TypeError, ValueError) as e:
            raise EntryDecodeError(
                entry_path, f"Can't read group '{PATH_PARAMETERS}': {e}"
            ) from e
        if not isinstance(params_group, h5py.Group):
            raise EntryDecodeError(entry_path, f"Missing group '{PATH_PARAMETERS}'")
        parameters = _read_parameters(params_group)

    return metadata, parameters
