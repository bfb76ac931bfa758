"""Enumerations shared across the storage layer."""

from enum import Enum


class StorageKind(str, Enum):
    """Built-in backend kind tags persisted on ``files.storage_kind``."""

    LOCAL = "local"
    LINUX_FOLDER = "linux_folder"
    AWS_S3 = "aws_s3"
    DIGITAL_OCEAN = "digital_ocean"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class FileSortField(str, Enum):
    NAME = "name"
    SIZE = "size"
    CREATE_TIME = "create_time"
    UPDATE_TIME = "update_time"
    CONTENT_TYPE = "content_type"
