"""CRUD base: shared data access for soft-deletable entities."""

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from filevault.core.timezone import now as tz_now
from filevault.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """Common lookups and writes; deleted rows are hidden unless asked for."""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any, *, include_deleted: bool = False) -> Optional[ModelType]:
        return self.query(db, include_deleted=include_deleted).filter(self.model.id == id).first()

    def create(self, db: Session, obj_in: Dict[str, Any], *, auto_commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        if auto_commit:
            self._commit(db)
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def save(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> ModelType:
        db.add(db_obj)
        if auto_commit:
            self._commit(db)
            db.refresh(db_obj)
        return db_obj

    def soft_delete(
        self,
        db: Session,
        db_obj: ModelType,
        *,
        deleted_by: Optional[str] = None,
        auto_commit: bool = True,
    ) -> ModelType:
        """Stamp ``deleted_at`` (and ``deleted_by`` when given) instead of removing the row."""
        db_obj.deleted_at = tz_now()
        if deleted_by is not None:
            db_obj.deleted_by = deleted_by
        return self.save(db, db_obj, auto_commit=auto_commit)

    def restore(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> ModelType:
        db_obj.deleted_at = None
        db_obj.deleted_by = None
        return self.save(db, db_obj, auto_commit=auto_commit)

    def hard_delete(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> None:
        """Remove the row physically."""
        db.delete(db_obj)
        if auto_commit:
            self._commit(db)
        else:
            db.flush()

    def query(self, db: Session, *, include_deleted: bool = False) -> Query:
        query = db.query(self.model)
        if not include_deleted:
            query = query.filter(self.model.deleted_at.is_(None))
        return query

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
