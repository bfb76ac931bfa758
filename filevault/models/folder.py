"""Folder hierarchy: parent pointer plus an explicit closure table.

``folders_closure`` holds one row per (ancestor, descendant) pair including the
reflexive ``depth = 0`` pair, so ancestor/descendant/children lookups are single
joins. ``path`` is materialised as ``/a/b/self``.
"""

from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Index, Integer, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column

from filevault.models.base import Base, SoftDeleteMixin, TimestampMixin, new_id


class Folder(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "folders"
    __table_args__ = (
        Index("ix_folders_name_deleted_at", "name", "deleted_at"),
        Index("ix_folders_parent_id_deleted_at", "parent_id", "deleted_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    path: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    file_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    total_size: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")


class FolderClosure(Base):
    __tablename__ = "folders_closure"

    ancestor_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("folders.id", ondelete="CASCADE"), primary_key=True
    )
    descendant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("folders.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    depth: Mapped[int] = mapped_column(Integer, default=0)
