"""Inputs and result envelopes of the file record service."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from filevault.core.enums import FileSortField, SortOrder
from filevault.models.file_record import FileRecord

# (content, filename, content_type) -> accept?
VirusScanHook = Callable[[bytes, str, str], bool]


class FileValidationConfig(BaseModel):
    max_file_size: Optional[int] = Field(None, ge=0)
    allowed_mime_types: Optional[List[str]] = None
    allowed_extensions: Optional[List[str]] = None
    virus_scan_hook: Optional[VirusScanHook] = None


class FileUploadOptions(BaseModel):
    filename: Optional[str] = None  # storage name; generated when omitted
    folder_id: Optional[str] = None
    storage_kind: Optional[str] = None
    content_type: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: bool = True
    metadata: Optional[dict[str, Any]] = None
    uploaded_by: Optional[str] = None


class FileMetadataUpdate(BaseModel):
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class FileQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=500)
    search: Optional[str] = None
    # "null" selects root-level files
    folder_id: Optional[str] = None
    storage_kind: Optional[str] = None
    content_type: Optional[str] = None
    extension: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None
    uploaded_by: Optional[str] = None
    min_size: Optional[int] = Field(None, ge=0)
    max_size: Optional[int] = Field(None, ge=0)
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    sort_by: FileSortField = FileSortField.CREATE_TIME
    sort_order: SortOrder = SortOrder.DESC
    include_deleted: bool = False


@dataclass
class FilePage:
    items: List[FileRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


class BulkFailure(BaseModel):
    file_id: str
    error: str


class BulkOperationResult(BaseModel):
    successful: List[str] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)
    total: int = 0
    success_count: int = 0
    failure_count: int = 0

    def ok(self, file_id: str) -> None:
        self.successful.append(file_id)
        self.success_count += 1

    def fail(self, file_id: str, error: Exception) -> None:
        self.failed.append(BulkFailure(file_id=file_id, error=str(error)))
        self.failure_count += 1


@dataclass
class UploadItem:
    content: bytes
    original_name: str
    content_type: Optional[str] = None


@dataclass
class MultipleUploadResult:
    successful: List[FileRecord] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)
