"""Amazon S3 storage backend."""

from typing import List, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from catalog_export.errors import StorageError
from catalog_export.models.data_models import ExportFile, StoredFile
from catalog_export.storage.base import CONTENT_TYPE, StorageBackend, is_export_file, utc_timestamp


class S3Storage(StorageBackend):
    """Writes the export to ``s3://{bucket}/{prefix}/{filename}``."""

    provider = "s3"

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        prefix: str = "",
        client=None,
        download_base_url: Optional[str] = None
    ):
        super().__init__(download_base_url=download_base_url)
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def object_key(self, filename: str) -> str:
        return f"{self.prefix}/{filename}" if self.prefix else filename

    def object_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quote(key)}"

    def _write(self, filename: str, data: bytes) -> StoredFile:
        key = self.object_key(filename)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=CONTENT_TYPE,
            )
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload of s3://{self.bucket}/{key} failed: {e}") from e

        return StoredFile(
            file_name=filename,
            url=self.public_url(filename, self.object_url(key)),
            provider=self.provider,
            location=f"s3://{self.bucket}/{key}",
            size=head.get("ContentLength", len(data)),
            content_type=head.get("ContentType", CONTENT_TYPE),
            last_modified=utc_timestamp(head.get("LastModified")),
        )

    def _list_files(self) -> List[ExportFile]:
        key_prefix = f"{self.prefix}/" if self.prefix else ""
        files = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=key_prefix):
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(key_prefix):]
                    if "/" in name or not is_export_file(name):
                        continue
                    files.append(ExportFile(
                        name=name,
                        size=obj.get("Size", 0),
                        last_modified=utc_timestamp(obj.get("LastModified")),
                    ))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 listing of s3://{self.bucket}/{key_prefix} failed: {e}") from e
        return files

    def _delete(self, filename: str) -> None:
        key = self.object_key(filename)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 delete of s3://{self.bucket}/{key} failed: {e}") from e
