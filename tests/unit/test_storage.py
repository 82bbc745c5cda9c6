"""Unit tests for storage backends."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from catalog_export.errors import ConfigurationError, StorageError
from catalog_export.models.config import PipelineConfig
from catalog_export.storage import (
    FileServiceStorage,
    LocalFileService,
    S3Storage,
    create_storage,
)
from catalog_export.storage.base import download_url


def s3_client():
    client = MagicMock()
    client.head_object.return_value = {
        "ContentLength": 42,
        "ContentType": "application/gzip",
        "LastModified": datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc),
    }
    return client


class TestDownloadUrl:

    def test_appends_file_name_query(self):
        assert download_url("https://shop.test/export/download", "products.csv.gz") == (
            "https://shop.test/export/download?fileName=products.csv.gz"
        )

    def test_extends_existing_query(self):
        assert download_url("https://shop.test/dl?site=1", "a b.csv.gz") == (
            "https://shop.test/dl?site=1&fileName=a+b.csv.gz"
        )


class TestS3Storage:

    @pytest.mark.asyncio
    async def test_put_object_with_content_type(self):
        client = s3_client()
        storage = S3Storage("exports", region="eu-west-1", prefix="/catalog/", client=client)

        stored = await storage.write("products.csv.gz", b"data")

        client.put_object.assert_called_once_with(
            Bucket="exports",
            Key="catalog/products.csv.gz",
            Body=b"data",
            ContentType="application/gzip",
        )
        assert stored.url == "https://exports.s3.eu-west-1.amazonaws.com/catalog/products.csv.gz"
        assert stored.location == "s3://exports/catalog/products.csv.gz"
        assert stored.size == 42
        assert stored.last_modified == "2024-05-01T08:30:00+00:00"
        assert stored.provider == "s3"

    @pytest.mark.asyncio
    async def test_repeated_writes_keep_the_same_url(self):
        storage = S3Storage("exports", client=s3_client(), download_base_url="https://shop.test/download")

        first = await storage.write("products.csv.gz", b"v1")
        second = await storage.write("products.csv.gz", b"v2")

        assert first.url == second.url == "https://shop.test/download?fileName=products.csv.gz"

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self):
        client = s3_client()
        client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )
        storage = S3Storage("exports", client=client)

        with pytest.raises(StorageError, match="AccessDenied"):
            await storage.write("products.csv.gz", b"data")


    @pytest.mark.asyncio
    async def test_lists_exports_below_prefix(self):
        client = s3_client()
        modified = datetime(2024, 5, 1, tzinfo=timezone.utc)
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [
                {"Key": "catalog/products.csv.gz", "Size": 10, "LastModified": modified},
                {"Key": "catalog/notes.txt", "Size": 3, "LastModified": modified},
            ]},
            {"Contents": [{"Key": "catalog/archive/old.csv", "Size": 5, "LastModified": modified}]},
            {},
        ]
        storage = S3Storage("exports", prefix="catalog", client=client)

        files = await storage.list_files()

        client.get_paginator.assert_called_once_with("list_objects_v2")
        client.get_paginator.return_value.paginate.assert_called_once_with(Bucket="exports", Prefix="catalog/")
        assert [(f.name, f.size, f.last_modified) for f in files] == [
            ("products.csv.gz", 10, "2024-05-01T00:00:00+00:00")
        ]

    @pytest.mark.asyncio
    async def test_delete_object(self):
        client = s3_client()

        await S3Storage("exports", prefix="catalog", client=client).delete("products.csv.gz")

        client.delete_object.assert_called_once_with(Bucket="exports", Key="catalog/products.csv.gz")

    @pytest.mark.asyncio
    async def test_delete_error_wrapped(self):
        client = s3_client()
        client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "DeleteObject"
        )

        with pytest.raises(StorageError, match="S3 delete of s3://exports/products.csv.gz"):
            await S3Storage("exports", client=client).delete("products.csv.gz")


class TestFileServiceStorage:

    @pytest.mark.asyncio
    async def test_writes_under_public_prefix(self, tmp_path):
        storage = FileServiceStorage(LocalFileService(tmp_path))

        stored = await storage.write("products.csv.gz", b"gzipped")

        path = tmp_path / "public" / "products.csv.gz"
        assert path.read_bytes() == b"gzipped"
        assert stored.location == "public/products.csv.gz"
        assert stored.url == path.resolve().as_uri()
        assert stored.size == 7
        assert stored.content_type == "application/gzip"

    @pytest.mark.asyncio
    async def test_overwrites_fixed_filename(self, tmp_path):
        storage = FileServiceStorage(LocalFileService(tmp_path), download_base_url="https://shop.test/dl")

        first = await storage.write("products.csv.gz", b"one")
        second = await storage.write("products.csv.gz", b"second")

        assert (tmp_path / "public" / "products.csv.gz").read_bytes() == b"second"
        assert first.url == second.url == "https://shop.test/dl?fileName=products.csv.gz"

    @pytest.mark.asyncio
    async def test_service_failure_wrapped(self):
        service = MagicMock()
        service.write.side_effect = OSError("disk full")

        with pytest.raises(StorageError, match="disk full"):
            await FileServiceStorage(service).write("products.csv.gz", b"x")

    @pytest.mark.asyncio
    async def test_unexpected_service_error_becomes_storage_error(self):
        service = MagicMock()
        service.write.side_effect = RuntimeError("file service quota exceeded")

        with pytest.raises(StorageError, match="quota exceeded"):
            await FileServiceStorage(service).write("products.csv.gz", b"x")

    @pytest.mark.asyncio
    async def test_lists_exports_under_public_prefix(self, tmp_path):
        storage = FileServiceStorage(LocalFileService(tmp_path))
        await storage.write("products.csv.gz", b"gzipped")
        await storage.write("legacy.csv", b"a,b")
        (tmp_path / "public" / "readme.txt").write_text("ignored")
        (tmp_path / "private.csv").write_text("ignored")

        files = await storage.list_files()

        assert [f.name for f in files] == ["legacy.csv", "products.csv.gz"]
        assert files[1].size == 7

    @pytest.mark.asyncio
    async def test_list_without_public_directory_is_empty(self, tmp_path):
        assert await FileServiceStorage(LocalFileService(tmp_path)).list_files() == []

    @pytest.mark.asyncio
    async def test_delete_removes_export(self, tmp_path):
        storage = FileServiceStorage(LocalFileService(tmp_path))
        await storage.write("products.csv.gz", b"gzipped")

        await storage.delete("products.csv.gz")

        assert not (tmp_path / "public" / "products.csv.gz").exists()
        assert await storage.list_files() == []

    @pytest.mark.asyncio
    async def test_delete_missing_export_fails(self, tmp_path):
        storage = FileServiceStorage(LocalFileService(tmp_path))

        with pytest.raises(StorageError, match="public/products.csv.gz"):
            await storage.delete("products.csv.gz")

    def test_local_service_rejects_escaping_names(self, tmp_path):
        with pytest.raises(ValueError):
            LocalFileService(tmp_path).write("../outside.csv.gz", b"x")


class TestCreateStorage:

    def test_s3_provider(self):
        storage = create_storage(PipelineConfig(storage_provider="s3", s3_bucket="exports", s3_prefix="p"))

        assert isinstance(storage, S3Storage)
        assert storage.object_key("f.csv.gz") == "p/f.csv.gz"

    def test_s3_requires_bucket(self):
        with pytest.raises(ConfigurationError, match="s3_bucket"):
            create_storage(PipelineConfig(storage_provider="s3"))

    def test_files_provider(self, tmp_path):
        storage = create_storage(PipelineConfig(storage_provider="files", files_directory=str(tmp_path)))

        assert isinstance(storage, FileServiceStorage)

    def test_unknown_provider(self):
        config = PipelineConfig.model_construct(storage_provider="ftp")

        with pytest.raises(ConfigurationError, match="Unknown storage provider: ftp"):
            create_storage(config)
