"""File row: metadata for one physical object held by a storage backend."""

from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Index, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column

from filevault.core.enums import StorageKind
from filevault.models.base import Base, SoftDeleteMixin, TimestampMixin, new_id


class FileRecord(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "files"
    __table_args__ = (
        Index("ix_files_storage_kind_deleted_at", "storage_kind", "deleted_at"),
        Index("ix_files_content_type_deleted_at", "content_type", "deleted_at"),
        Index("ix_files_create_time", "create_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # storage name (generated or caller supplied), not the client name
    name: Mapped[str] = mapped_column(String(500), index=True)
    original_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # absolute path for filesystem backends, object key for object stores
    path: Mapped[str] = mapped_column(Text)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    content_type: Mapped[str] = mapped_column(String(200), default="application/octet-stream")
    extension: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    storage_kind: Mapped[str] = mapped_column(String(32), default=StorageKind.LOCAL.value)
    storage_bucket: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    storage_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    folder_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    checksum: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    @property
    def object_ref(self) -> str:
        """Identifier the backend understands for this row's object."""
        return self.storage_key or self.path
