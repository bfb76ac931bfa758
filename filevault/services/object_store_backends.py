"""S3-compatible object store backends (boto3)."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from filevault.core.exceptions import (
    AppException,
    BackendReadError,
    BackendWriteError,
    InvalidFileNameError,
    ObjectNotFoundError,
)
from filevault.core.logger import logger
from filevault.schemas.storage import CdnObjectStoreConfig, ObjectStoreConfig
from filevault.services.storage_backends import (
    DelegatingBackend,
    DeleteResult,
    SignedUrlOptions,
    StorageBackend,
    StorageResult,
)
from filevault.utils.path_utils import guess_content_type, norm_key

# delete_objects accepts at most this many keys per call
DELETE_BATCH_SIZE = 1000

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

_BOTO_ERRORS = (ClientError, BotoCoreError)


def _is_not_found(exc: Exception) -> bool:
    if not isinstance(exc, ClientError):
        return False
    error = exc.response.get("Error") or {}
    status_code = (exc.response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    return str(error.get("Code", "")) in _NOT_FOUND_CODES or status_code == 404


class ObjectStoreBackend(StorageBackend):
    """Bucket/key store. ``path`` and ``key`` of every result are the object key."""

    def __init__(self, config: ObjectStoreConfig, *, client: Any = None):
        self.config = config
        self.bucket = config.bucket
        self.region = config.region
        self.acl = config.acl or "private"
        self.endpoint = config.endpoint_override
        self._client = client if client is not None else self._build_client()

    def _build_client(self):
        kwargs: dict[str, Any] = {
            "region_name": self.region,
            "aws_access_key_id": self.config.access_key_id,
            "aws_secret_access_key": self.config.secret_access_key,
            "config": Config(
                retries={"max_attempts": self.config.max_retries, "mode": "standard"},
                connect_timeout=self.config.connect_timeout,
                read_timeout=self.config.read_timeout,
            ),
        }
        if self.endpoint:
            kwargs["endpoint_url"] = self.endpoint
        return boto3.client("s3", **kwargs)

    @staticmethod
    def _key(path: str) -> str:
        key = norm_key(path)
        if not key:
            raise InvalidFileNameError(path or "", "empty object key")
        return key

    def public_url(self, key: str) -> str:
        if self.endpoint:
            return f"{self.endpoint}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _url_for(self, key: str) -> Optional[str]:
        # private objects are only reachable through a signed URL
        if self.acl == "public-read":
            return self.public_url(key)
        return None

    def upload(self, content: bytes, filename: str, *, content_type: Optional[str] = None, **options: Any) -> StorageResult:
        key = self._key(filename)
        mimetype = content_type or guess_content_type(key)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=mimetype,
                ACL=self.acl,
                **options,
            )
        except _BOTO_ERRORS as exc:
            logger.error("S3 upload failed for %s: %s", key, exc, exc_info=True)
            raise BackendWriteError("upload", exc, key) from exc
        logger.info("File uploaded to bucket %s: %s", self.bucket, key)
        return StorageResult(
            path=key,
            size=len(content),
            content_type=mimetype,
            url=self._url_for(key),
            key=key,
            bucket=self.bucket,
        )

    def delete(self, path: str) -> DeleteResult:
        key = self._key(path)
        try:
            if not self.exists(key):
                return DeleteResult(success=False, message="File not found", missing=True)
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except BackendReadError as exc:
            return DeleteResult(success=False, message=exc.msg)
        except _BOTO_ERRORS as exc:
            logger.error("S3 delete failed for %s: %s", key, exc)
            return DeleteResult(success=False, message=str(exc))
        logger.info("File deleted from bucket %s: %s", self.bucket, key)
        return DeleteResult(success=True, message="File deleted successfully")

    def delete_multiple(self, paths: Sequence[str]) -> List[DeleteResult]:
        """Native batch delete; one result per input key, in input order.

        Unlike ``delete``, keys that were already absent come back as
        ``success=True`` with ``missing`` unset: the store reports them as
        deleted and no per-key lookup is made. A key that cannot be
        normalised fails on its own without stopping the rest.
        """
        keys: List[Optional[str]] = []
        rejected: dict[int, DeleteResult] = {}
        for index, path in enumerate(paths):
            try:
                keys.append(self._key(path))
            except AppException as exc:
                keys.append(None)
                rejected[index] = DeleteResult(success=False, message=exc.msg)
        valid = [key for key in keys if key is not None]
        outcomes: dict[str, DeleteResult] = {}
        for i in range(0, len(valid), DELETE_BATCH_SIZE):
            batch = list(dict.fromkeys(valid[i : i + DELETE_BATCH_SIZE]))
            try:
                response = self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": False},
                )
            except _BOTO_ERRORS as exc:
                logger.error("S3 batch delete failed: %s", exc)
                for key in batch:
                    outcomes[key] = DeleteResult(success=False, message=str(exc))
                continue
            for item in response.get("Deleted", []):
                outcomes[item["Key"]] = DeleteResult(success=True, message="File deleted successfully")
            for item in response.get("Errors", []):
                message = item.get("Message") or item.get("Code") or "Delete failed"
                outcomes[item["Key"]] = DeleteResult(success=False, message=message)
        logger.info("Batch deleted %d keys from bucket %s", len(valid), self.bucket)
        return [
            rejected[index]
            if key is None
            else outcomes.get(key, DeleteResult(success=False, message="No result reported for key"))
            for index, key in enumerate(keys)
        ]

    def fetch(self, path: str) -> bytes:
        key = self._key(path)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except _BOTO_ERRORS as exc:
            if _is_not_found(exc):
                raise ObjectNotFoundError(key) from exc
            logger.error("S3 get file failed for %s: %s", key, exc)
            raise BackendReadError("fetch", exc, key) from exc

    def exists(self, path: str) -> bool:
        key = self._key(path)
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except _BOTO_ERRORS as exc:
            if _is_not_found(exc):
                return False
            raise BackendReadError("exists", exc, key) from exc
        return True

    def get_signed_url(self, path: str, options: Optional[SignedUrlOptions] = None) -> str:
        key = self._key(path)
        options = options or SignedUrlOptions()
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if options.content_type:
            params["ResponseContentType"] = options.content_type
        if options.content_disposition:
            params["ResponseContentDisposition"] = options.content_disposition
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=options.expires_in or 3600,
            )
        except _BOTO_ERRORS as exc:
            logger.error("S3 get signed URL failed for %s: %s", key, exc)
            raise BackendReadError("get_signed_url", exc, key) from exc

    def get_metadata(self, path: str) -> dict[str, Any]:
        key = self._key(path)
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=key)
        except _BOTO_ERRORS as exc:
            if _is_not_found(exc):
                raise ObjectNotFoundError(key) from exc
            logger.error("S3 get metadata failed for %s: %s", key, exc)
            raise BackendReadError("get_metadata", exc, key) from exc
        return {
            "size": response.get("ContentLength"),
            "content_type": response.get("ContentType"),
            "last_modified": response.get("LastModified"),
            "etag": response.get("ETag"),
            "metadata": response.get("Metadata") or {},
        }

    def copy(self, source: str, destination: str) -> StorageResult:
        src = self._key(source)
        dst = self._key(destination)
        try:
            # server-side copy, the bytes never leave the store
            self._client.copy_object(
                Bucket=self.bucket,
                Key=dst,
                CopySource={"Bucket": self.bucket, "Key": src},
                ACL=self.acl,
            )
        except _BOTO_ERRORS as exc:
            if _is_not_found(exc):
                raise ObjectNotFoundError(src) from exc
            logger.error("S3 copy failed %s -> %s: %s", src, dst, exc)
            raise BackendWriteError("copy", exc, src) from exc
        metadata = self.get_metadata(dst)
        logger.info("File copied in bucket %s from %s to %s", self.bucket, src, dst)
        return StorageResult(
            path=dst,
            size=int(metadata.get("size") or 0),
            content_type=metadata.get("content_type") or guess_content_type(dst),
            url=self._url_for(dst),
            key=dst,
            bucket=self.bucket,
        )


# S3-compatible, so reuse the object store and only change the URLs
class CdnObjectStoreBackend(DelegatingBackend):
    """Object store fronted by a CDN: public URLs point at ``cdn_origin`` when it is set."""

    inner: ObjectStoreBackend

    def __init__(self, config: CdnObjectStoreConfig, *, client: Any = None, inner: Optional[ObjectStoreBackend] = None):
        if inner is None:
            endpoint = config.endpoint_override or f"https://{config.region}.digitaloceanspaces.com"
            inner = ObjectStoreBackend(config.model_copy(update={"endpoint_override": endpoint}), client=client)
        super().__init__(inner)
        self.config = config
        self.cdn_origin = config.cdn_origin
        logger.info("CDN object store backend ready for bucket %s", config.bucket)

    def public_url(self, key: str) -> str:
        if self.cdn_origin:
            return f"{self.cdn_origin}/{key}"
        return self.inner.public_url(key)

    def _rewrite(self, result: StorageResult) -> StorageResult:
        if self.cdn_origin and result.url:
            result.url = self.public_url(result.key or result.path)
        return result

    def upload(self, content: bytes, filename: str, *, content_type: Optional[str] = None, **options: Any) -> StorageResult:
        return self._rewrite(self.inner.upload(content, filename, content_type=content_type, **options))

    def copy(self, source: str, destination: str) -> StorageResult:
        return self._rewrite(self.inner.copy(source, destination))
