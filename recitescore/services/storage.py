"""
Storage backends for recitation audio.

Both backends share the same small surface:
  put(key, data, content_type) -> public url
  get(key) -> bytes
"""

import logging
import os
from pathlib import Path

from recitescore.core.config import settings

logger = logging.getLogger(__name__)

# Global backend cache
_storage_instance = None


class StorageError(Exception):
    pass


class LocalStorage:
    """Writes objects under a root directory; urls are built from a base url."""

    def __init__(self, root: str | Path, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        # keys are unique per submission; never overwrite
        if path.exists():
            raise StorageError(f"Object already exists: {key}")
        # written under a temporary name; the key only ever holds complete objects
        partial = path.with_name(f".{path.name}.part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(data)
            os.replace(partial, path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise StorageError(f"Could not write {key}: {e}") from e
        return f"{self.public_base_url}/{key}"

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read {key}: {e}") from e


class S3Storage:
    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client=None,
    ):
        if client is None:
            import boto3

            client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        self.client = client
        self.bucket = bucket
        self.region = region

    def put(self, key: str, data: bytes, content_type: str) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload of {key} failed: {e}") from e
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def get(self, key: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 download of {key} failed: {e}") from e


def build_storage():
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "s3":
        if not settings.S3_BUCKET_NAME:
            raise StorageError("S3_BUCKET_NAME is not configured")
        return S3Storage(
            bucket=settings.S3_BUCKET_NAME,
            region=settings.AWS_REGION,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )
    if backend == "local":
        return LocalStorage(settings.STORAGE_DIR, settings.PUBLIC_BASE_URL)
    raise StorageError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")


def get_storage():
    """
    Get or build the configured storage backend.
    Uses a global cache so every request shares one client.
    """
    global _storage_instance

    if _storage_instance is None:
        _storage_instance = build_storage()
        logger.info(f"Using {type(_storage_instance).__name__} for recitation audio")

    return _storage_instance
