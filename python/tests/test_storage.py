"""Tests for storage clients and path building."""

import re
from pathlib import Path

import pytest

from devcollab.storage import (
    FakeStorageClient,
    LocalStorageClient,
    StorageError,
    build_storage_path,
)
from devcollab.storage.paths import get_file_extension


class TestStoragePaths:
    def test_path_shape(self):
        path = build_storage_path("code", "Main.PY")

        assert re.fullmatch(r"chat/code/[0-9a-f-]{36}\.py", path)

    def test_paths_are_unique(self):
        assert build_storage_path("files", "a.txt") != build_storage_path("files", "a.txt")

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("report.PDF", ".pdf"),
            ("archive.tar.gz", ".gz"),
            ("noext", ""),
            ("..\\..\\evil.sh", ".sh"),
            ("weird.ex t", ""),
        ],
    )
    def test_extension(self, filename, expected):
        assert get_file_extension(filename) == expected


class TestLocalStorageClient:
    def test_put_get_delete(self, tmp_path: Path):
        storage = LocalStorageClient(tmp_path)

        ref = storage.put_object("chat/files/x.txt", b"hello", "text/plain")

        assert ref == "chat/files/x.txt"
        assert (tmp_path / "chat/files/x.txt").read_bytes() == b"hello"
        assert storage.get_object(ref) == b"hello"

        storage.delete_object(ref)
        assert storage.get_object(ref) is None

    def test_missing_object(self, tmp_path: Path):
        assert LocalStorageClient(tmp_path).get_object("chat/files/none.txt") is None

    def test_delete_missing_is_ignored(self, tmp_path: Path):
        LocalStorageClient(tmp_path).delete_object("chat/files/none.txt")

    def test_path_escape_rejected(self, tmp_path: Path):
        storage = LocalStorageClient(tmp_path / "root")

        with pytest.raises(StorageError):
            storage.put_object("../outside.txt", b"x", "text/plain")


class TestFakeStorageClient:
    def test_failing_writes(self):
        storage = FakeStorageClient()
        storage.fail_writes = True

        with pytest.raises(StorageError):
            storage.put_object("chat/files/a.txt", b"a", "text/plain")

        assert storage.paths == []
