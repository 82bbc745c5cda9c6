"""Pluggable storage backends for the export file."""

from pathlib import Path

from catalog_export.errors import ConfigurationError
from catalog_export.storage.base import StorageBackend
from catalog_export.storage.files import FileServiceStorage, LocalFileService
from catalog_export.storage.s3 import S3Storage


def create_storage(config) -> StorageBackend:
    """
    Build the storage backend named by ``config.storage_provider``.

    Raises:
        ConfigurationError: For an unknown provider or missing S3 bucket
    """
    provider = config.storage_provider

    if provider == "s3":
        if not config.s3_bucket:
            raise ConfigurationError("s3_bucket is required for the s3 storage provider")
        return S3Storage(
            bucket=config.s3_bucket,
            region=config.s3_region,
            prefix=config.s3_prefix,
            download_base_url=config.download_base_url,
        )

    if provider == "files":
        return FileServiceStorage(
            LocalFileService(Path(config.files_directory)),
            download_base_url=config.download_base_url,
        )

    raise ConfigurationError(f"Unknown storage provider: {provider}")


__all__ = [
    "FileServiceStorage",
    "LocalFileService",
    "S3Storage",
    "StorageBackend",
    "create_storage",
]
