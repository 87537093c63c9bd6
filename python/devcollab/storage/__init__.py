"""Storage module for chat attachments.

Provides:
- Storage clients (local directory and in-memory fake)
- Path building utilities for consistent storage paths
"""

from devcollab.storage.client import (
    FakeStorageClient,
    LocalStorageClient,
    StorageClientBase,
    StorageError,
    get_storage_client,
)
from devcollab.storage.paths import build_storage_path, get_file_extension

__all__ = [
    "StorageClientBase",
    "LocalStorageClient",
    "FakeStorageClient",
    "StorageError",
    "get_storage_client",
    "build_storage_path",
    "get_file_extension",
]
