"""Test fixtures: a throwaway database, a local backend and an in-memory S3 double."""

import hashlib
import io
from datetime import datetime, timezone
from typing import Generator

import pytest
from botocore.exceptions import ClientError
from sqlalchemy.orm import Session, sessionmaker

from filevault.db.init_db import init_db
from filevault.db.session import create_db_engine
from filevault.schemas.storage import LocalStorageConfig, ObjectStoreConfig, StorageConfigs
from filevault.services.backend_registry import BackendRegistry
from filevault.services.file_service import FileRecordService
from filevault.services.folder_service import FolderTree
from filevault.services.object_store_backends import ObjectStoreBackend


def client_error(code: str, operation: str, status: int) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} from fake store"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeS3Client:
    """Just enough of the boto3 S3 client for the object store backends."""

    def __init__(self) -> None:
        self.objects: dict[str, dict] = {}
        self.calls: list[str] = []
        # key -> error code raised by the next call touching that key
        self.failures: dict[str, str] = {}

    def _maybe_fail(self, key: str, operation: str) -> None:
        code = self.failures.get(key)
        if code:
            raise client_error(code, operation, 403)

    def put_object(self, Bucket, Key, Body, ContentType=None, ACL=None, **kwargs):
        self.calls.append("put_object")
        self._maybe_fail(Key, "PutObject")
        self.objects[Key] = {
            "body": bytes(Body),
            "content_type": ContentType or "binary/octet-stream",
            "acl": ACL,
            "metadata": kwargs.get("Metadata", {}),
        }
        return {"ETag": '"etag"'}

    def get_object(self, Bucket, Key):
        self.calls.append("get_object")
        self._maybe_fail(Key, "GetObject")
        if Key not in self.objects:
            raise client_error("NoSuchKey", "GetObject", 404)
        obj = self.objects[Key]
        return {"Body": io.BytesIO(obj["body"]), "ContentType": obj["content_type"]}

    def head_object(self, Bucket, Key):
        self.calls.append("head_object")
        self._maybe_fail(Key, "HeadObject")
        if Key not in self.objects:
            raise client_error("404", "HeadObject", 404)
        obj = self.objects[Key]
        return {
            "ContentLength": len(obj["body"]),
            "ContentType": obj["content_type"],
            "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "ETag": f'"{hashlib.md5(obj["body"]).hexdigest()}"',
            "Metadata": obj["metadata"],
        }

    def delete_object(self, Bucket, Key):
        self.calls.append("delete_object")
        self._maybe_fail(Key, "DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def delete_objects(self, Bucket, Delete):
        self.calls.append("delete_objects")
        deleted, errors = [], []
        for item in Delete["Objects"]:
            key = item["Key"]
            if key in self.failures:
                errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
                continue
            self.objects.pop(key, None)
            deleted.append({"Key": key})
        return {"Deleted": deleted, "Errors": errors}

    def copy_object(self, Bucket, Key, CopySource, ACL=None):
        self.calls.append("copy_object")
        source = CopySource["Key"]
        if source not in self.objects:
            raise client_error("NoSuchKey", "CopyObject", 404)
        self.objects[Key] = dict(self.objects[source], acl=ACL)
        return {}

    def generate_presigned_url(self, ClientMethod, Params=None, ExpiresIn=3600, HttpMethod=None):
        self.calls.append("generate_presigned_url")
        self.last_presign = {"method": ClientMethod, "params": dict(Params or {}), "expires_in": ExpiresIn}
        return f"https://signed.example/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


@pytest.fixture()
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session_fixture(engine) -> Generator[Session, None, None]:
    """Database session for a single test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def upload_root(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture()
def local_config(upload_root) -> LocalStorageConfig:
    return LocalStorageConfig(upload_path=str(upload_root), base_url="http://files.test/media")


@pytest.fixture()
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture()
def s3_config() -> ObjectStoreConfig:
    return ObjectStoreConfig(
        region="eu-west-1",
        access_key_id="AKIATEST",
        secret_access_key="secret",
        bucket="test-bucket",
    )


@pytest.fixture()
def registry(local_config, s3_config, fake_s3) -> BackendRegistry:
    registry = BackendRegistry(StorageConfigs(local=local_config))
    registry.register_strategy("aws_s3", ObjectStoreBackend(s3_config, client=fake_s3))
    return registry


@pytest.fixture()
def folder_tree(registry) -> FolderTree:
    return FolderTree(registry)


@pytest.fixture()
def file_service(registry, folder_tree) -> FileRecordService:
    return FileRecordService(registry, folders=folder_tree)
