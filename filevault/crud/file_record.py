"""File record CRUD: filtered listing, folder-scoped batch updates, stats aggregate."""

from __future__ import annotations

import json
from typing import List, Optional, Tuple

from sqlalchemy import String, cast, func, or_, update
from sqlalchemy.orm import Session

from filevault.core.enums import SortOrder
from filevault.core.timezone import now as tz_now
from filevault.crud.base import CRUDBase
from filevault.models.file_record import FileRecord
from filevault.schemas.files import FileQuery
from filevault.schemas.folders import FolderStats


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CRUDFileRecord(CRUDBase[FileRecord]):
    def find_many(self, db: Session, params: FileQuery) -> Tuple[List[FileRecord], int]:
        """One page of rows matching ``params`` plus the unpaged total."""
        query = self.query(db, include_deleted=params.include_deleted)

        if params.search:
            needle = f"%{_escape_like(params.search.strip().lower())}%"
            query = query.filter(
                or_(
                    func.lower(FileRecord.name).like(needle, escape="\\"),
                    func.lower(FileRecord.original_name).like(needle, escape="\\"),
                )
            )
        if params.folder_id is not None:
            if params.folder_id in ("", "null"):
                query = query.filter(FileRecord.folder_id.is_(None))
            else:
                query = query.filter(FileRecord.folder_id == params.folder_id)
        if params.storage_kind:
            query = query.filter(FileRecord.storage_kind == params.storage_kind)
        if params.content_type:
            query = query.filter(FileRecord.content_type == params.content_type)
        if params.extension:
            query = query.filter(FileRecord.extension == params.extension.lstrip(".").lower())
        if params.tags:
            # tags is a JSON array; match each element as the serializer writes it
            as_text = cast(FileRecord.tags, String)
            query = query.filter(
                or_(*[as_text.like(f"%{_escape_like(json.dumps(tag))}%", escape="\\") for tag in params.tags])
            )
        if params.is_public is not None:
            query = query.filter(FileRecord.is_public.is_(params.is_public))
        if params.uploaded_by:
            query = query.filter(FileRecord.uploaded_by == params.uploaded_by)
        if params.min_size is not None:
            query = query.filter(FileRecord.size >= params.min_size)
        if params.max_size is not None:
            query = query.filter(FileRecord.size <= params.max_size)
        if params.created_after is not None:
            query = query.filter(FileRecord.create_time >= params.created_after)
        if params.created_before is not None:
            query = query.filter(FileRecord.create_time <= params.created_before)

        total = query.count()

        column = getattr(FileRecord, params.sort_by.value)
        ordering = column.asc() if params.sort_order == SortOrder.ASC else column.desc()
        items = (
            query.order_by(ordering, FileRecord.id.asc())
            .offset((params.page - 1) * params.limit)
            .limit(params.limit)
            .all()
        )
        return items, total

    def list_in_folder(self, db: Session, folder_id: str, *, include_deleted: bool = False) -> List[FileRecord]:
        return self.query(db, include_deleted=include_deleted).filter(FileRecord.folder_id == folder_id).all()

    def count_in_folder(self, db: Session, folder_id: str, *, include_deleted: bool = False) -> int:
        return (
            self.query(db, include_deleted=include_deleted)
            .filter(FileRecord.folder_id == folder_id)
            .with_entities(func.count(FileRecord.id))
            .scalar()
            or 0
        )

    def stats_for_folder(self, db: Session, folder_id: str) -> FolderStats:
        """Live count and byte sum over non-deleted rows of one folder."""
        count, total_size = (
            db.query(func.count(FileRecord.id), func.coalesce(func.sum(FileRecord.size), 0))
            .filter(FileRecord.folder_id == folder_id)
            .filter(FileRecord.deleted_at.is_(None))
            .one()
        )
        return FolderStats(count=int(count or 0), total_size=int(total_size or 0))

    def soft_delete_in_folder(
        self, db: Session, folder_id: str, *, deleted_by: Optional[str] = None, auto_commit: bool = True
    ) -> int:
        """Mark every live row of the folder deleted in one statement."""
        values = {"deleted_at": tz_now()}
        if deleted_by is not None:
            values["deleted_by"] = deleted_by
        result = db.execute(
            update(FileRecord)
            .where(FileRecord.folder_id == folder_id)
            .where(FileRecord.deleted_at.is_(None))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if auto_commit:
            self._commit(db)
        return result.rowcount or 0

    def restore_in_folder(self, db: Session, folder_id: str, *, auto_commit: bool = True) -> int:
        result = db.execute(
            update(FileRecord)
            .where(FileRecord.folder_id == folder_id)
            .where(FileRecord.deleted_at.is_not(None))
            .values(deleted_at=None, deleted_by=None)
            .execution_options(synchronize_session="fetch")
        )
        if auto_commit:
            self._commit(db)
        return result.rowcount or 0


file_record_crud = CRUDFileRecord(FileRecord)
