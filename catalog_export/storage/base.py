"""Storage backend interface."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional
from urllib.parse import urlencode

from catalog_export.errors import StorageError
from catalog_export.models.data_models import ExportFile, StoredFile


CONTENT_TYPE = "application/gzip"
EXPORT_SUFFIXES = (".csv", ".csv.gz")


def download_url(base_url: str, file_name: str) -> str:
    """Stable download URL for ``file_name`` behind a download action."""
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'fileName': file_name})}"


def utc_timestamp(value: Optional[datetime] = None) -> str:
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def is_export_file(name: str) -> bool:
    return name.endswith(EXPORT_SUFFIXES)


class StorageBackend(ABC):
    """
    Persists, lists and deletes export files.

    Each write overwrites the previous export, so the returned URL stays the
    same across runs. Backends implement blocking ``_write``, ``_list_files``
    and ``_delete``, which run in a worker thread. Whatever a backend raises
    reaches the caller as a StorageError.
    """

    provider: str = ""

    def __init__(self, download_base_url: Optional[str] = None):
        self.download_base_url = download_base_url

    async def write(self, filename: str, data: bytes) -> StoredFile:
        """
        Store ``data`` as ``filename``.

        Raises:
            StorageError: If the backend rejects the write
        """
        return await self._call(f"write of {filename}", self._write, filename, data)

    async def list_files(self) -> List[ExportFile]:
        """CSV exports currently in storage, sorted by name."""
        files = await self._call("listing", self._list_files)
        return sorted(files, key=lambda f: f.name)

    async def delete(self, filename: str) -> None:
        """
        Remove the export ``filename``.

        Raises:
            StorageError: If the file cannot be deleted
        """
        await self._call(f"delete of {filename}", self._delete, filename)

    async def _call(self, action: str, func: Callable[..., Any], *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"{self.provider} {action} failed: {type(e).__name__}: {e}") from e

    @abstractmethod
    def _write(self, filename: str, data: bytes) -> StoredFile:
        pass

    @abstractmethod
    def _list_files(self) -> List[ExportFile]:
        pass

    @abstractmethod
    def _delete(self, filename: str) -> None:
        pass

    def public_url(self, filename: str, canonical_url: str) -> str:
        if self.download_base_url:
            return download_url(self.download_base_url, filename)
        return canonical_url
