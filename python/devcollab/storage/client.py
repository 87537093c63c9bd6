"""Attachment storage client abstraction.

The chat core treats storage as a sink: it hands over bytes and keeps the
returned reference on the attachment. All methods receive the full storage
path directly - no prefix manipulation.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class StorageClientBase(ABC):
    """Abstract base class for storage client implementations."""

    @abstractmethod
    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        """Store an object.

        Args:
            path: Full storage path (e.g., "chat/files/<uuid>.pdf").
            data: Object bytes.
            content_type: MIME type of the object.

        Returns:
            Retrievable reference for the object.

        Raises:
            StorageError: If the write fails.
        """
        ...

    @abstractmethod
    def get_object(self, path: str) -> bytes | None:
        """Get object content, or None if it does not exist."""
        ...

    @abstractmethod
    def delete_object(self, path: str) -> None:
        """Delete an object (best-effort, missing objects are ignored)."""
        ...


class LocalStorageClient(StorageClientBase):
    """Storage client writing objects below a local directory."""

    def __init__(self, root: str | Path):
        self._root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if not target.is_relative_to(self._root.resolve()):
            raise StorageError(f"Path escapes storage root: {path}", code="E_STORAGE_PATH")
        return target

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write object: {path}") from e
        return path

    def get_object(self, path: str) -> bytes | None:
        target = self._resolve(path)
        if not target.is_file():
            return None
        return target.read_bytes()

    def delete_object(self, path: str) -> None:
        try:
            self._resolve(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Storage delete error: %s", e)


class FakeStorageClient(StorageClientBase):
    """Fake storage client for tests.

    Stores objects in memory and provides deterministic behavior.
    """

    def __init__(self):
        self._objects: dict[str, tuple[bytes, str]] = {}  # path -> (content, content_type)
        self.fail_writes = False

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_writes:
            raise StorageError(f"Failed to write object: {path}")
        self._objects[path] = (data, content_type)
        return path

    def get_object(self, path: str) -> bytes | None:
        if path not in self._objects:
            return None
        return self._objects[path][0]

    def delete_object(self, path: str) -> None:
        self._objects.pop(path, None)

    # Test helper methods

    def content_type_of(self, path: str) -> str | None:
        """Get the stored content type (test helper)."""
        if path not in self._objects:
            return None
        return self._objects[path][1]

    @property
    def paths(self) -> list[str]:
        """All stored paths (test helper)."""
        return list(self._objects)


def get_storage_client() -> StorageClientBase:
    """Create the storage client from settings."""
    from devcollab.config import get_settings

    return LocalStorageClient(get_settings().storage_root)
