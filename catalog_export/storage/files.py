"""Managed file service storage backend."""

import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from catalog_export.errors import StorageError
from catalog_export.models.data_models import ExportFile, StoredFile
from catalog_export.storage.base import CONTENT_TYPE, StorageBackend, is_export_file, utc_timestamp


PUBLIC_PREFIX = "public/"


class FileService(Protocol):
    """Minimal file service API: write, inspect, list and delete named files."""

    def write(self, name: str, data: bytes) -> None:
        ...

    def get_properties(self, name: str) -> Dict[str, Any]:
        ...

    def list(self, prefix: str = "") -> List[str]:
        ...

    def delete(self, name: str) -> None:
        ...


class LocalFileService:
    """Directory-backed file service."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"File name escapes the service root: {name}")
        return path

    def write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def get_properties(self, name: str) -> Dict[str, Any]:
        path = self._path(name)
        stat = path.stat()
        content_type = CONTENT_TYPE if name.endswith(".gz") else mimetypes.guess_type(name)[0]
        return {
            "size": stat.st_size,
            "content_type": content_type or "application/octet-stream",
            "last_modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            "url": path.as_uri(),
        }

    def list(self, prefix: str = "") -> List[str]:
        """Names of the files under ``prefix``, relative to the root."""
        directory = self._path(prefix) if prefix.strip("/") else self.root.resolve()
        if not directory.is_dir():
            return []
        root = self.root.resolve()
        return sorted(
            path.relative_to(root).as_posix()
            for path in directory.iterdir()
            if path.is_file()
        )

    def delete(self, name: str) -> None:
        self._path(name).unlink()


class FileServiceStorage(StorageBackend):
    """Writes the export under ``public/`` of a managed file service."""

    provider = "files"

    def __init__(
        self,
        service: FileService,
        download_base_url: Optional[str] = None
    ):
        super().__init__(download_base_url=download_base_url)
        self.service = service

    def _write(self, filename: str, data: bytes) -> StoredFile:
        name = f"{PUBLIC_PREFIX}{filename}"
        try:
            self.service.write(name, data)
            properties = self.service.get_properties(name)
        except (OSError, ValueError) as e:
            raise StorageError(f"File service write of {name} failed: {e}") from e

        return StoredFile(
            file_name=filename,
            url=self.public_url(filename, properties.get("url", name)),
            provider=self.provider,
            location=name,
            size=properties.get("size", len(data)),
            content_type=properties.get("content_type", CONTENT_TYPE),
            last_modified=utc_timestamp(properties.get("last_modified")),
        )

    def _list_files(self) -> List[ExportFile]:
        files = []
        try:
            for name in self.service.list(PUBLIC_PREFIX):
                file_name = name[len(PUBLIC_PREFIX):] if name.startswith(PUBLIC_PREFIX) else name
                if not is_export_file(file_name):
                    continue
                properties = self.service.get_properties(name)
                files.append(ExportFile(
                    name=file_name,
                    size=properties.get("size", 0),
                    last_modified=utc_timestamp(properties.get("last_modified")),
                ))
        except (OSError, ValueError) as e:
            raise StorageError(f"File service listing of {PUBLIC_PREFIX} failed: {e}") from e
        return files

    def _delete(self, filename: str) -> None:
        name = f"{PUBLIC_PREFIX}{filename}"
        try:
            self.service.delete(name)
        except FileNotFoundError as e:
            raise StorageError(f"File service has no {name}") from e
        except (OSError, ValueError) as e:
            raise StorageError(f"File service delete of {name} failed: {e}") from e
