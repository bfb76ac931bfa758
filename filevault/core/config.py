"""Settings: environment-driven configuration for the storage layer."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from filevault.schemas.storage import (
    CdnObjectStoreConfig,
    FileOwner,
    LinuxFolderConfig,
    LocalStorageConfig,
    ObjectStoreConfig,
    StorageConfigs,
)


def _detect_base_dir() -> Path:
    """Walk up from this file to the directory that contains the ``filevault`` package."""
    current = Path(__file__).resolve()
    for candidate in current.parents:
        if (candidate / "filevault").is_dir():
            return candidate
    return current.parent


BASE_DIR = _detect_base_dir()


def _as_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_environment() -> None:
    env_file_override = os.getenv("ENV_FILE")
    if env_file_override:
        candidate = BASE_DIR / env_file_override
        if candidate.exists():
            load_dotenv(candidate, override=True, encoding="utf-8")
        return

    base_env = BASE_DIR / ".env"
    if base_env.exists():
        load_dotenv(base_env, override=False, encoding="utf-8")

    environment = os.getenv("ENVIRONMENT")
    if environment is None and _as_bool(os.getenv("DEBUG")):
        environment = "development"

    if environment:
        candidate_name = environment if environment.startswith(".env") else f".env.{environment}"
        candidate_path = BASE_DIR / candidate_name
        if candidate_path.exists():
            load_dotenv(candidate_path, override=True, encoding="utf-8")


_load_environment()


def _split_csv(raw: Optional[str]) -> list[str]:
    text = (raw or "").strip()
    return [item.strip() for item in text.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    All tunables of the storage layer. Each field can be overridden through the
    environment variable named by its alias. Backend kinds whose required
    fields are left empty are simply not configured.
    """

    database_url: str = Field(default="sqlite:///./filevault.db", alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="log", alias="LOG_DIR")
    log_file_name: str = Field(default="filevault.log", alias="LOG_FILE_NAME")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    timezone: str = Field(default="UTC", alias="TIMEZONE")

    default_storage_kind: Optional[str] = Field(default=None, alias="DEFAULT_STORAGE_KIND")

    # local
    local_upload_path: Optional[str] = Field(default=None, alias="LOCAL_UPLOAD_PATH")
    local_base_url: Optional[str] = Field(default=None, alias="LOCAL_BASE_URL")
    local_create_if_missing: bool = Field(default=True, alias="LOCAL_CREATE_IF_MISSING")

    # linux_folder
    linux_folder_path: Optional[str] = Field(default=None, alias="LINUX_FOLDER_PATH")
    linux_folder_base_url: Optional[str] = Field(default=None, alias="LINUX_FOLDER_BASE_URL")
    linux_folder_permissions: str = Field(default="0644", alias="LINUX_FOLDER_PERMISSIONS")
    linux_folder_uid: Optional[int] = Field(default=None, alias="LINUX_FOLDER_UID")
    linux_folder_gid: Optional[int] = Field(default=None, alias="LINUX_FOLDER_GID")

    # aws_s3
    s3_region: Optional[str] = Field(default=None, alias="S3_REGION")
    s3_access_key_id: Optional[str] = Field(default=None, alias="S3_ACCESS_KEY_ID")
    s3_secret_access_key: Optional[str] = Field(default=None, alias="S3_SECRET_ACCESS_KEY")
    s3_bucket: Optional[str] = Field(default=None, alias="S3_BUCKET")
    s3_acl: str = Field(default="private", alias="S3_ACL")
    s3_endpoint_url: Optional[str] = Field(default=None, alias="S3_ENDPOINT_URL")

    # digital_ocean (CDN-fronted object store)
    do_spaces_region: Optional[str] = Field(default=None, alias="DO_SPACES_REGION")
    do_spaces_access_key_id: Optional[str] = Field(default=None, alias="DO_SPACES_ACCESS_KEY_ID")
    do_spaces_secret_access_key: Optional[str] = Field(default=None, alias="DO_SPACES_SECRET_ACCESS_KEY")
    do_spaces_bucket: Optional[str] = Field(default=None, alias="DO_SPACES_BUCKET")
    do_spaces_acl: str = Field(default="private", alias="DO_SPACES_ACL")
    do_spaces_endpoint_url: Optional[str] = Field(default=None, alias="DO_SPACES_ENDPOINT_URL")
    do_spaces_cdn_origin: Optional[str] = Field(default=None, alias="DO_SPACES_CDN_ORIGIN")

    object_store_max_retries: int = Field(default=3, alias="OBJECT_STORE_MAX_RETRIES")
    object_store_connect_timeout: float = Field(default=10.0, alias="OBJECT_STORE_CONNECT_TIMEOUT")
    object_store_read_timeout: float = Field(default=60.0, alias="OBJECT_STORE_READ_TIMEOUT")

    # upload validation
    max_file_size: Optional[int] = Field(default=None, alias="MAX_FILE_SIZE")
    allowed_mime_types_raw: str = Field(default="", alias="ALLOWED_MIME_TYPES")
    allowed_extensions_raw: str = Field(default="", alias="ALLOWED_EXTENSIONS")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path

    @property
    def log_directory(self) -> Path:
        return self._resolve_path(self.log_dir)

    @property
    def log_file_path(self) -> Path:
        return self.log_directory / self.log_file_name

    @property
    def timezone_info(self) -> ZoneInfo:
        """Configured timezone, falling back to UTC when the name is unknown."""
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    @property
    def allowed_mime_types(self) -> list[str]:
        return _split_csv(self.allowed_mime_types_raw)

    @property
    def allowed_extensions(self) -> list[str]:
        return [ext.lstrip(".").lower() for ext in _split_csv(self.allowed_extensions_raw)]

    def _object_store_tuning(self) -> dict:
        return {
            "max_retries": self.object_store_max_retries,
            "connect_timeout": self.object_store_connect_timeout,
            "read_timeout": self.object_store_read_timeout,
        }

    @property
    def storage_configs(self) -> StorageConfigs:
        """Per-kind backend configuration, containing only fully specified kinds."""
        configs = StorageConfigs()

        if self.local_upload_path:
            configs.local = LocalStorageConfig(
                upload_path=str(self._resolve_path(self.local_upload_path)),
                base_url=self.local_base_url,
                create_if_missing=self.local_create_if_missing,
            )

        if self.linux_folder_path:
            owner = None
            if self.linux_folder_uid is not None and self.linux_folder_gid is not None:
                owner = FileOwner(uid=self.linux_folder_uid, gid=self.linux_folder_gid)
            configs.linux_folder = LinuxFolderConfig(
                upload_path=str(self._resolve_path(self.linux_folder_path)),
                base_url=self.linux_folder_base_url,
                permissions=self.linux_folder_permissions,
                owner=owner,
            )

        if self.s3_region and self.s3_access_key_id and self.s3_secret_access_key and self.s3_bucket:
            configs.aws_s3 = ObjectStoreConfig(
                region=self.s3_region,
                access_key_id=self.s3_access_key_id,
                secret_access_key=self.s3_secret_access_key,
                bucket=self.s3_bucket,
                acl=self.s3_acl,
                endpoint_override=self.s3_endpoint_url,
                **self._object_store_tuning(),
            )

        if (
            self.do_spaces_region
            and self.do_spaces_access_key_id
            and self.do_spaces_secret_access_key
            and self.do_spaces_bucket
        ):
            configs.digital_ocean = CdnObjectStoreConfig(
                region=self.do_spaces_region,
                access_key_id=self.do_spaces_access_key_id,
                secret_access_key=self.do_spaces_secret_access_key,
                bucket=self.do_spaces_bucket,
                acl=self.do_spaces_acl,
                endpoint_override=self.do_spaces_endpoint_url,
                cdn_origin=self.do_spaces_cdn_origin,
                **self._object_store_tuning(),
            )

        return configs


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
