"""Tests for simdex.exceptions module."""

from pathlib import Path

import pytest

from simdex.exceptions import (
    CacheError,
    CollectionExistsError,
    EntryDecodeError,
    InvalidCollectionError,
    SimdexError,
)


@pytest.mark.parametrize(
    "exc_type,builtin",
    [
        (InvalidCollectionError, OSError),
        (CollectionExistsError, FileExistsError),
        (EntryDecodeError, ValueError),
        (CacheError, RuntimeError),
    ],
)
def test_hierarchy(exc_type, builtin):
    assert issubclass(exc_type, SimdexError)
    assert issubclass(exc_type, builtin)


class TestInvalidCollectionError:
    """Tests for InvalidCollectionError exception."""

    def test_invalid_collection_error_with_message(self):
        """Test that InvalidCollectionError preserves the error message."""
        message = "Collection not found at path /foo/bar"
        with pytest.raises(InvalidCollectionError, match=message):
            raise InvalidCollectionError(message)


class TestEntryDecodeError:
    """Tests for EntryDecodeError exception."""

    def test_str_contains_path(self):
        error = EntryDecodeError(Path("/data/run1"), "Missing attribute 'status'")
        assert error.path == Path("/data/run1")
        assert str(error) == "Missing attribute 'status' (entry: /data/run1)"


class TestCollectionExistsError:
    def test_attributes(self):
        error = CollectionExistsError(Path("/data/c"), "directory is not empty")
        assert error.path == Path("/data/c")
        assert error.reason == "directory is not empty"
        assert "/data/c" in str(error)


class TestCacheError:
    def test_file_is_optional(self):
        assert CacheError("boom").file is None
        assert CacheError("boom", file="x.sqlite").file == "x.sqlite"
