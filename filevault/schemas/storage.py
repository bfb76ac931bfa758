"""Per-kind storage backend configuration records."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LocalStorageConfig(BaseModel):
    upload_path: str = Field(..., min_length=1)
    base_url: Optional[str] = None
    create_if_missing: bool = True


class FileOwner(BaseModel):
    uid: int = Field(..., ge=0)
    gid: int = Field(..., ge=0)


class LinuxFolderConfig(LocalStorageConfig):
    """Local directory plus POSIX mode/ownership applied after each write."""

    permissions: str = "0644"
    owner: Optional[FileOwner] = None

    @field_validator("permissions")
    @classmethod
    def _check_octal(cls, value: str) -> str:
        text = value.strip()
        try:
            mode = int(text, 8)
        except ValueError as exc:
            raise ValueError(f"permissions must be an octal mode string, got {value!r}") from exc
        if mode < 0 or mode > 0o7777:
            raise ValueError(f"permissions out of range: {value!r}")
        return text

    @property
    def mode(self) -> int:
        return int(self.permissions, 8)


class ObjectStoreConfig(BaseModel):
    region: str = Field(..., min_length=1)
    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1)
    bucket: str = Field(..., min_length=1)
    # S3 canned ACL; only "public-read" produces a public URL on upload
    acl: str = "private"
    endpoint_override: Optional[str] = None
    max_retries: int = Field(3, ge=0)
    connect_timeout: float = Field(10.0, gt=0)
    read_timeout: float = Field(60.0, gt=0)

    @field_validator("endpoint_override")
    @classmethod
    def _strip_endpoint(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip().rstrip("/")
        return text or None


class CdnObjectStoreConfig(ObjectStoreConfig):
    cdn_origin: Optional[str] = None

    @field_validator("cdn_origin")
    @classmethod
    def _strip_origin(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip().rstrip("/")
        return text or None


class StorageConfigs(BaseModel):
    """Configured backends keyed by kind; ``None`` means not instantiated."""

    local: Optional[LocalStorageConfig] = None
    linux_folder: Optional[LinuxFolderConfig] = None
    aws_s3: Optional[ObjectStoreConfig] = None
    digital_ocean: Optional[CdnObjectStoreConfig] = None
