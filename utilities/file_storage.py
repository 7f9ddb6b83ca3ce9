# utilities/file_storage.py
"""MinIO-backed object storage used for receipt scans and arbitrary documents."""
import logging
from datetime import timedelta
from io import BytesIO
from typing import Any, Dict, Iterator, List, Optional

from flask import current_app
from minio import Minio
from minio.error import S3Error

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "NotFound", "ResourceNotFound"}


def is_missing_object(exc: Exception) -> bool:
    return isinstance(exc, S3Error) and exc.code in MISSING_OBJECT_CODES


class FileStorage:
    """Flask extension wrapping a single MinIO bucket.

    The client is built lazily from the app config and cached in
    ``app.extensions["minio_client"]`` so tests can swap it for a mock.
    """

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["file_storage"] = self
        app.extensions.setdefault("minio_client", None)

    @property
    def client(self) -> Minio:
        client = current_app.extensions.get("minio_client")
        if client is None:
            cfg = current_app.config
            client = Minio(
                f"{cfg['MINIO_ENDPOINT']}:{cfg['MINIO_PORT']}",
                access_key=cfg["MINIO_ACCESS_KEY"],
                secret_key=cfg["MINIO_SECRET_KEY"],
                secure=cfg["MINIO_USE_SSL"],
            )
            current_app.extensions["minio_client"] = client
        return client

    @property
    def bucket(self) -> str:
        return current_app.config["MINIO_BUCKET"]

    def initialize_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket):
                self.client.make_bucket(bucket_name=self.bucket)
                logger.info("Bucket %s created", self.bucket)
            else:
                logger.info("Bucket %s already exists", self.bucket)
        except Exception:
            logger.exception("Failed to ensure bucket %s exists", self.bucket)
            raise

    def upload_file(self, file_name: str, data: bytes, content_type: str,
                    metadata: Optional[Dict[str, str]] = None) -> str:
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=file_name,
                data=BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata={"Content-Type": content_type, **(metadata or {})},
            )
        except Exception:
            logger.exception("Failed to upload %s", file_name)
            raise
        logger.info("Uploaded %s (%d bytes) to %s", file_name, len(data), self.bucket)
        return file_name

    def get_file(self, file_name: str):
        """Return the raw object response. Callers must close it."""
        try:
            return self.client.get_object(bucket_name=self.bucket, object_name=file_name)
        except Exception:
            logger.exception("Failed to get %s", file_name)
            raise

    def iter_file(self, file_name: str, chunk_size: int = 32 * 1024) -> Iterator[bytes]:
        response = self.get_file(file_name)
        try:
            yield from response.stream(chunk_size)
        finally:
            response.close()
            response.release_conn()

    def get_file_url(self, file_name: str, expiry: int = 3600) -> str:
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=file_name,
                expires=timedelta(seconds=expiry),
            )
        except Exception:
            logger.exception("Failed to presign %s", file_name)
            raise

    def delete_file(self, file_name: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=file_name)
        except Exception:
            logger.exception("Failed to delete %s", file_name)
            raise
        logger.info("Deleted %s from %s", file_name, self.bucket)

    def discard_file(self, file_name: str) -> bool:
        """Delete ``file_name`` if possible; failures are logged, not raised."""
        try:
            self.delete_file(file_name)
        except Exception as exc:
            logger.warning("Could not delete stored file %s: %s", file_name, exc)
            return False
        return True

    def file_exists(self, file_name: str) -> bool:
        try:
            self.client.stat_object(bucket_name=self.bucket, object_name=file_name)
            return True
        except Exception:
            return False

    def get_file_metadata(self, file_name: str) -> Dict[str, Any]:
        try:
            stat = self.client.stat_object(bucket_name=self.bucket, object_name=file_name)
        except Exception:
            logger.exception("Failed to stat %s", file_name)
            raise
        return {
            "size": stat.size,
            "etag": stat.etag,
            "lastModified": stat.last_modified.isoformat() if stat.last_modified else None,
            "contentType": stat.content_type,
            "metaData": dict(stat.metadata or {}),
        }

    def list_files(self, prefix: str = "") -> List[Dict[str, Any]]:
        objects = self.client.list_objects(bucket_name=self.bucket, prefix=prefix or None, recursive=True)
        return [
            {
                "name": obj.object_name,
                "size": obj.size,
                "lastModified": obj.last_modified.isoformat() if obj.last_modified else None,
                "etag": obj.etag,
            }
            for obj in objects
        ]


file_storage = FileStorage()
