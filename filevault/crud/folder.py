"""Folder CRUD and closure-table maintenance.

Closure invariants:
- every folder has its reflexive row ``(id, id, 0)``;
- for every ancestor A of D at distance n there is exactly one row ``(A, D, n)``.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from filevault.crud.base import CRUDBase
from filevault.models.folder import Folder, FolderClosure


class CRUDFolder(CRUDBase[Folder]):
    # ----------------------------
    # closure reads
    # ----------------------------
    def ancestors(self, db: Session, folder_id: str, *, include_deleted: bool = True) -> List[Folder]:
        """Strict ancestors ordered root first."""
        return (
            self.query(db, include_deleted=include_deleted)
            .join(FolderClosure, FolderClosure.ancestor_id == Folder.id)
            .filter(FolderClosure.descendant_id == folder_id)
            .filter(FolderClosure.depth > 0)
            .order_by(FolderClosure.depth.desc())
            .all()
        )

    def descendants(
        self,
        db: Session,
        folder_id: str,
        *,
        max_depth: Optional[int] = None,
        include_self: bool = False,
        include_deleted: bool = False,
    ) -> List[Folder]:
        """Descendants ordered shallow first."""
        query = (
            self.query(db, include_deleted=include_deleted)
            .join(FolderClosure, FolderClosure.descendant_id == Folder.id)
            .filter(FolderClosure.ancestor_id == folder_id)
        )
        if not include_self:
            query = query.filter(FolderClosure.depth > 0)
        if max_depth is not None:
            query = query.filter(FolderClosure.depth <= max_depth)
        return query.order_by(FolderClosure.depth.asc(), Folder.name.asc()).all()

    def descendant_ids(self, db: Session, folder_id: str) -> set[str]:
        """Ids of the whole subtree rooted at ``folder_id``, itself included, deleted or not."""
        rows = db.execute(
            select(FolderClosure.descendant_id).where(FolderClosure.ancestor_id == folder_id)
        ).scalars()
        return set(rows)

    def child_ids(self, db: Session, folder_id: str) -> List[str]:
        return list(
            db.execute(
                select(Folder.id).where(Folder.parent_id == folder_id).order_by(Folder.name.asc())
            ).scalars()
        )

    # ----------------------------
    # closure writes
    # ----------------------------
    def attach(self, db: Session, folder_id: str, parent_id: Optional[str]) -> None:
        """Insert closure rows for a freshly created leaf."""
        rows = [{"ancestor_id": folder_id, "descendant_id": folder_id, "depth": 0}]
        if parent_id is not None:
            for ancestor_id, depth in db.execute(
                select(FolderClosure.ancestor_id, FolderClosure.depth).where(
                    FolderClosure.descendant_id == parent_id
                )
            ).all():
                rows.append({"ancestor_id": ancestor_id, "descendant_id": folder_id, "depth": depth + 1})
        db.execute(insert(FolderClosure), rows)

    def reattach(self, db: Session, folder_id: str, new_parent_id: Optional[str]) -> None:
        """Rewire the closure of the subtree at ``folder_id`` under ``new_parent_id``.

        Pairs linking the subtree to its old outside ancestors are dropped, then the
        cross product of the new parent's ancestor chain and the subtree is inserted.
        Costs O(depth x subtree size) rows.
        """
        subtree = db.execute(
            select(FolderClosure.descendant_id, FolderClosure.depth).where(
                FolderClosure.ancestor_id == folder_id
            )
        ).all()
        subtree_ids = [row[0] for row in subtree]

        db.execute(
            delete(FolderClosure)
            .where(FolderClosure.descendant_id.in_(subtree_ids))
            .where(FolderClosure.ancestor_id.not_in(subtree_ids))
            .execution_options(synchronize_session=False)
        )

        if new_parent_id is not None:
            chain = db.execute(
                select(FolderClosure.ancestor_id, FolderClosure.depth).where(
                    FolderClosure.descendant_id == new_parent_id
                )
            ).all()
            rows = [
                {
                    "ancestor_id": ancestor_id,
                    "descendant_id": descendant_id,
                    "depth": up_depth + down_depth + 1,
                }
                for ancestor_id, up_depth in chain
                for descendant_id, down_depth in subtree
            ]
            if rows:
                db.execute(insert(FolderClosure), rows)

    def detach(self, db: Session, folder_id: str) -> None:
        """Drop every closure row mentioning the folder, in either column."""
        db.execute(
            delete(FolderClosure)
            .where((FolderClosure.ancestor_id == folder_id) | (FolderClosure.descendant_id == folder_id))
            .execution_options(synchronize_session=False)
        )


folder_crud = CRUDFolder(Folder)
