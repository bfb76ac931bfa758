"""Folder tree: hierarchy writes, closure-table lookups, cached file stats."""

from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from filevault.core.exceptions import (
    AlreadyDeletedError,
    CycleError,
    FolderNotEmptyError,
    FolderNotFoundError,
    ValidationError,
)
from filevault.core.logger import logger
from filevault.crud.file_record import file_record_crud
from filevault.crud.folder import folder_crud
from filevault.models.folder import Folder
from filevault.schemas.folders import FolderCreate, FolderNode, FolderStats, FolderUpdate
from filevault.services.backend_registry import BackendRegistry
from filevault.services.object_cleanup import purge_stored_object


def _join_path(parent_path: Optional[str], name: str) -> str:
    if not parent_path or parent_path == "/":
        return f"/{name}"
    return f"{parent_path}/{name}"


def _check_name(name: Optional[str]) -> str:
    text = (name or "").strip()
    if not text:
        raise ValidationError("Folder name must not be empty", name)
    if "/" in text:
        raise ValidationError(f"Folder name must not contain '/': {text}", text)
    return text


class FolderTree:
    def __init__(self, registry: BackendRegistry):
        # forced hard delete removes stored objects through the registry
        self.registry = registry

    def _get_or_404(self, db: Session, folder_id: str, *, include_deleted: bool = False) -> Folder:
        folder = folder_crud.get(db, folder_id, include_deleted=include_deleted)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    # ----------------------------
    # reads
    # ----------------------------
    def find_by_id(self, db: Session, folder_id: str, *, include_deleted: bool = False) -> Folder:
        return self._get_or_404(db, folder_id, include_deleted=include_deleted)

    def find_all(self, db: Session, *, include_deleted: bool = False) -> List[Folder]:
        return folder_crud.query(db, include_deleted=include_deleted).order_by(Folder.path.asc()).all()

    def get_tree(self, db: Session) -> List[FolderNode]:
        """Root-level forest of live folders, children sorted by name."""
        folders = folder_crud.query(db).order_by(Folder.name.asc()).all()
        nodes: Dict[str, FolderNode] = {folder.id: FolderNode(folder) for folder in folders}
        roots: List[FolderNode] = []
        for folder in folders:
            parent = nodes.get(folder.parent_id) if folder.parent_id else None
            if parent is None:
                roots.append(nodes[folder.id])
            else:
                parent.children.append(nodes[folder.id])
        return roots

    def get_children(self, db: Session, folder_id: str) -> List[Folder]:
        self._get_or_404(db, folder_id)
        return folder_crud.descendants(db, folder_id, max_depth=1)

    def get_all_descendants(self, db: Session, folder_id: str) -> List[Folder]:
        self._get_or_404(db, folder_id)
        return folder_crud.descendants(db, folder_id)

    def get_ancestors(self, db: Session, folder_id: str) -> List[Folder]:
        """Ancestors ordered root first, the folder itself excluded."""
        self._get_or_404(db, folder_id, include_deleted=True)
        return folder_crud.ancestors(db, folder_id)

    def get_stats(self, db: Session, folder_id: str) -> FolderStats:
        """Live count and size of non-deleted files, computed now rather than read from the cache."""
        self._get_or_404(db, folder_id, include_deleted=True)
        return file_record_crud.stats_for_folder(db, folder_id)

    # ----------------------------
    # writes
    # ----------------------------
    def create(self, db: Session, payload: FolderCreate) -> Folder:
        name = _check_name(payload.name)
        parent = self._get_or_404(db, payload.parent_id) if payload.parent_id is not None else None
        try:
            folder = folder_crud.create(
                db,
                {
                    "name": name,
                    "description": payload.description,
                    "path": _join_path(parent.path if parent else None, name),
                    "parent_id": parent.id if parent else None,
                    "created_by": payload.created_by,
                    "meta": payload.metadata,
                    "is_public": payload.is_public,
                    "file_count": 0,
                    "total_size": 0,
                },
                auto_commit=False,
            )
            folder_crud.attach(db, folder.id, folder.parent_id)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        logger.info("Folder created: %s (%s)", folder.path, folder.id)
        return folder

    def update(self, db: Session, folder_id: str, payload: FolderUpdate) -> Folder:
        folder = self._get_or_404(db, folder_id)
        renamed = False
        if payload.name is not None:
            name = _check_name(payload.name)
            renamed = name != folder.name
            folder.name = name
        if payload.description is not None:
            folder.description = payload.description
        if payload.is_public is not None:
            folder.is_public = payload.is_public
        if payload.metadata is not None:
            folder.meta = payload.metadata
        try:
            if renamed:
                self._recompute_paths(db, folder)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        return folder

    def move(self, db: Session, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        """Re-parent ``folder_id``; ``None`` moves it to the root level.

        Fails with ``CycleError`` when the target lies in the folder's own subtree,
        leaving the tree untouched.
        """
        folder = self._get_or_404(db, folder_id)
        if new_parent_id is not None:
            self._get_or_404(db, new_parent_id)
            if new_parent_id in folder_crud.descendant_ids(db, folder_id):
                raise CycleError(folder_id, new_parent_id)
        if folder.parent_id == new_parent_id:
            return folder

        try:
            folder.parent_id = new_parent_id
            folder_crud.reattach(db, folder_id, new_parent_id)
            self._recompute_paths(db, folder)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        logger.info("Folder %s moved under %s, new path %s", folder_id, new_parent_id or "root", folder.path)
        return folder

    def _recompute_paths(self, db: Session, folder: Folder) -> None:
        """Rebuild ``path`` for ``folder`` and its whole subtree, shallow first."""
        parent_path = None
        if folder.parent_id is not None:
            parent = folder_crud.get(db, folder.parent_id, include_deleted=True)
            parent_path = parent.path if parent else None
        paths: Dict[str, str] = {}
        subtree = folder_crud.descendants(db, folder.id, include_self=True, include_deleted=True)
        for node in subtree:
            if node.id == folder.id:
                node.path = _join_path(parent_path, node.name)
            else:
                node.path = _join_path(paths.get(node.parent_id), node.name)
            paths[node.id] = node.path
        db.flush()

    def soft_delete(self, db: Session, folder_id: str, *, deleted_by: Optional[str] = None) -> Folder:
        """Mark the folder deleted and soft-delete its files in one batch update."""
        folder = self._get_or_404(db, folder_id, include_deleted=True)
        if folder.is_deleted:
            raise AlreadyDeletedError("Folder", folder_id)
        try:
            folder_crud.soft_delete(db, folder, deleted_by=deleted_by, auto_commit=False)
            affected = file_record_crud.soft_delete_in_folder(db, folder_id, deleted_by=deleted_by, auto_commit=False)
            self._store_stats(db, folder)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        logger.info("Folder %s soft-deleted with %d files", folder_id, affected)
        return folder

    def restore(self, db: Session, folder_id: str) -> Folder:
        folder = self._get_or_404(db, folder_id, include_deleted=True)
        try:
            folder_crud.restore(db, folder, auto_commit=False)
            affected = file_record_crud.restore_in_folder(db, folder_id, auto_commit=False)
            self._store_stats(db, folder)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        logger.info("Folder %s restored with %d files", folder_id, affected)
        return folder

    def hard_delete(self, db: Session, folder_id: str, *, force: bool = False) -> None:
        """Remove the folder row for good.

        Without ``force`` the folder must hold no file (soft-deleted ones count)
        and no child folder. With ``force`` the subtree is removed children
        first, each file's stored object before its row. A backend failure
        stops the cascade with the remaining rows intact.
        """
        folder = self._get_or_404(db, folder_id, include_deleted=True)
        if not force:
            has_files = file_record_crud.count_in_folder(db, folder_id, include_deleted=True) > 0
            if has_files or folder_crud.child_ids(db, folder_id):
                raise FolderNotEmptyError(folder_id)
            self._remove_folder_row(db, folder)
            logger.info("Folder %s hard-deleted", folder_id)
            return

        # explicit stack: pre-order walk, then reversed so children go first
        order: List[str] = []
        pending = [folder.id]
        while pending:
            current = pending.pop()
            order.append(current)
            pending.extend(folder_crud.child_ids(db, current))

        removed_files = 0
        for current_id in reversed(order):
            for record in file_record_crud.list_in_folder(db, current_id, include_deleted=True):
                purge_stored_object(self.registry, record)
                file_record_crud.hard_delete(db, record)
                removed_files += 1
            current = folder_crud.get(db, current_id, include_deleted=True)
            if current is not None:
                self._remove_folder_row(db, current)
        logger.info(
            "Folder %s force-deleted with %d folders and %d files",
            folder_id,
            len(order),
            removed_files,
        )

    def _remove_folder_row(self, db: Session, folder: Folder) -> None:
        try:
            folder_crud.detach(db, folder.id)
            db.delete(folder)
            db.commit()
        except Exception:
            db.rollback()
            raise

    # ----------------------------
    # stats cache
    # ----------------------------
    def _store_stats(self, db: Session, folder: Folder) -> FolderStats:
        db.flush()
        stats = file_record_crud.stats_for_folder(db, folder.id)
        folder.file_count = stats.count
        folder.total_size = stats.total_size
        return stats

    def refresh_stats(self, db: Session, folder_id: str, *, auto_commit: bool = True) -> Folder:
        """Recompute and persist the cached ``file_count``/``total_size``."""
        folder = self._get_or_404(db, folder_id, include_deleted=True)
        self._store_stats(db, folder)
        if auto_commit:
            folder_crud.save(db, folder)
        else:
            db.flush()
        return folder
