"""File record service: metadata rows kept in step with the bytes in a backend.

Order inside one upload: validate, check folder, backend write, row insert,
folder stat refresh. Hard delete runs backend first so a failure leaves the
row as the record of a possibly leaked object.
"""

from __future__ import annotations

import hashlib
from typing import Any, Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from filevault.core.config import Settings, get_settings
from filevault.core.exceptions import (
    AlreadyDeletedError,
    AppException,
    BackendReadError,
    BackendWriteError,
    FileRecordNotFoundError,
    FolderNotFoundError,
)
from filevault.core.logger import logger
from filevault.crud.file_record import file_record_crud
from filevault.crud.folder import folder_crud
from filevault.models.file_record import FileRecord
from filevault.schemas.files import (
    BulkOperationResult,
    FileMetadataUpdate,
    FilePage,
    FileQuery,
    FileUploadOptions,
    FileValidationConfig,
    MultipleUploadResult,
    UploadItem,
)
from filevault.services.backend_registry import BackendRegistry
from filevault.services.folder_service import FolderTree
from filevault.services.object_cleanup import purge_stored_object
from filevault.services.storage_backends import SignedUrlOptions, StorageBackend, StorageResult
from filevault.services.upload_validation import validate_upload
from filevault.utils.path_utils import bare_extension, generate_storage_name, guess_content_type


class FileRecordService:
    def __init__(
        self,
        registry: BackendRegistry,
        *,
        folders: Optional[FolderTree] = None,
        validation: Optional[FileValidationConfig] = None,
        default_kind: Optional[str] = None,
    ):
        self.registry = registry
        self.folders = folders or FolderTree(registry)
        self.validation = validation
        self.default_kind = default_kind

    # ----------------------------
    # helpers
    # ----------------------------
    def _get_or_404(self, db: Session, file_id: str, *, include_deleted: bool = False) -> FileRecord:
        record = file_record_crud.get(db, file_id, include_deleted=include_deleted)
        if record is None:
            raise FileRecordNotFoundError(file_id)
        return record

    def _ensure_folder(self, db: Session, folder_id: Optional[str]) -> None:
        if folder_id is not None and folder_crud.get(db, folder_id) is None:
            raise FolderNotFoundError(folder_id)

    def _resolve_kind(self, requested: Optional[str]) -> str:
        if requested:
            return requested
        if self.default_kind and self.registry.has_strategy(self.default_kind):
            return self.default_kind
        return self.registry.default_kind_name()

    def _refresh_folder(self, db: Session, folder_id: Optional[str]) -> None:
        if folder_id is not None and folder_crud.get(db, folder_id, include_deleted=True) is not None:
            self.folders.refresh_stats(db, folder_id)

    # ----------------------------
    # upload
    # ----------------------------
    def upload_file(
        self,
        db: Session,
        content: bytes,
        original_name: str,
        options: Optional[FileUploadOptions] = None,
        *,
        content_type: Optional[str] = None,
    ) -> FileRecord:
        options = options or FileUploadOptions()
        mimetype = content_type or options.content_type or guess_content_type(original_name)

        validate_upload(content, original_name, mimetype, self.validation)
        self._ensure_folder(db, options.folder_id)

        kind = self._resolve_kind(options.storage_kind)
        backend = self.registry.get_strategy(kind)
        storage_name = options.filename or generate_storage_name(original_name)

        result = self._write(backend, content, storage_name, mimetype)
        try:
            record = file_record_crud.create(
                db,
                {
                    "name": storage_name,
                    "original_name": original_name,
                    "path": result.path,
                    "url": result.url,
                    "size": result.size,
                    "content_type": result.content_type or mimetype,
                    "extension": bare_extension(original_name),
                    "storage_kind": kind,
                    "storage_bucket": result.bucket,
                    "storage_key": result.key,
                    "folder_id": options.folder_id,
                    "uploaded_by": options.uploaded_by,
                    "description": options.description,
                    "tags": options.tags,
                    "is_public": options.is_public,
                    "meta": options.metadata,
                    "checksum": hashlib.sha256(content).hexdigest(),
                },
            )
        except Exception:
            self._compensate(backend, result)
            raise

        self._refresh_folder(db, options.folder_id)
        logger.info("File uploaded successfully: %s (%s, %s bytes)", record.id, kind, record.size)
        return record

    @staticmethod
    def _write(backend: StorageBackend, content: bytes, storage_name: str, mimetype: str) -> StorageResult:
        try:
            return backend.upload(content, storage_name, content_type=mimetype)
        except AppException:
            raise
        except Exception as exc:
            logger.error("File upload failed for %s: %s", storage_name, exc, exc_info=True)
            raise BackendWriteError("upload", exc, storage_name) from exc

    @staticmethod
    def _compensate(backend: StorageBackend, result: StorageResult) -> None:
        """Best-effort removal of an object whose row could not be written."""
        ref = result.key or result.path
        try:
            outcome = backend.delete(ref)
        except Exception as exc:
            logger.warning("Compensating delete raised for %s: %s", ref, exc)
            return
        if not outcome.success:
            logger.warning("Compensating delete failed for %s: %s", ref, outcome.message)

    def upload_multiple(
        self,
        db: Session,
        items: Iterable[UploadItem],
        options: Optional[FileUploadOptions] = None,
    ) -> MultipleUploadResult:
        """Upload each item on its own; one failure does not stop the rest."""
        options = options or FileUploadOptions()
        outcome = MultipleUploadResult()
        for item in items:
            # a shared explicit storage name would make every item overwrite the first
            per_item = options.model_copy(update={"filename": None}) if options.filename else options
            try:
                record = self.upload_file(
                    db,
                    item.content,
                    item.original_name,
                    per_item,
                    content_type=item.content_type,
                )
            except Exception as exc:
                logger.warning("Upload of %s failed in batch: %s", item.original_name, exc)
                outcome.failed.append({"filename": item.original_name, "error": str(exc)})
                continue
            outcome.successful.append(record)
        return outcome

    # ----------------------------
    # reads
    # ----------------------------
    def find_by_id(self, db: Session, file_id: str, *, include_deleted: bool = False) -> FileRecord:
        return self._get_or_404(db, file_id, include_deleted=include_deleted)

    def find_all(self, db: Session, params: Optional[FileQuery] = None) -> FilePage:
        params = params or FileQuery()
        items, total = file_record_crud.find_many(db, params)
        return FilePage(items=items, total=total, page=params.page, limit=params.limit)

    def get_signed_url(
        self,
        db: Session,
        file_id: str,
        expires_in: int = 3600,
        *,
        content_type: Optional[str] = None,
        content_disposition: Optional[str] = None,
    ) -> str:
        record = self._get_or_404(db, file_id)
        backend = self.registry.get_strategy(record.storage_kind)
        return backend.get_signed_url(
            record.object_ref,
            SignedUrlOptions(
                expires_in=expires_in,
                content_type=content_type,
                content_disposition=content_disposition,
            ),
        )

    def fetch_content(self, db: Session, file_id: str) -> bytes:
        record = self._get_or_404(db, file_id)
        backend = self.registry.get_strategy(record.storage_kind)
        try:
            return backend.fetch(record.object_ref)
        except AppException:
            raise
        except Exception as exc:
            raise BackendReadError("fetch", exc, file_id) from exc

    def get_object_metadata(self, db: Session, file_id: str) -> dict[str, Any]:
        record = self._get_or_404(db, file_id)
        return self.registry.get_strategy(record.storage_kind).get_metadata(record.object_ref)

    # ----------------------------
    # soft delete / restore / metadata
    # ----------------------------
    def soft_delete(self, db: Session, file_id: str, *, deleted_by: Optional[str] = None) -> FileRecord:
        record = self._get_or_404(db, file_id, include_deleted=True)
        if record.is_deleted:
            raise AlreadyDeletedError("File", file_id)
        file_record_crud.soft_delete(db, record, deleted_by=deleted_by)
        self._refresh_folder(db, record.folder_id)
        logger.info("File soft deleted: %s", file_id)
        return record

    def restore(self, db: Session, file_id: str) -> FileRecord:
        record = self._get_or_404(db, file_id, include_deleted=True)
        if not record.is_deleted:
            return record
        file_record_crud.restore(db, record)
        self._refresh_folder(db, record.folder_id)
        logger.info("File restored: %s", file_id)
        return record

    def update_metadata(self, db: Session, file_id: str, payload: FileMetadataUpdate) -> FileRecord:
        """Set description, tags and public flag; ``metadata`` keys are merged into the existing map."""
        record = self._get_or_404(db, file_id)
        if payload.description is not None:
            record.description = payload.description
        if payload.tags is not None:
            record.tags = list(payload.tags)
        if payload.is_public is not None:
            record.is_public = payload.is_public
        if payload.metadata is not None:
            # reassign a new dict, JSON columns do not track in-place changes
            record.meta = {**(record.meta or {}), **payload.metadata}
        file_record_crud.save(db, record)
        logger.info("File metadata updated: %s", file_id)
        return record

    # ----------------------------
    # hard delete
    # ----------------------------
    def hard_delete(self, db: Session, file_id: str) -> None:
        """Remove the stored object, then the row. A failed backend delete keeps the row."""
        record = self._get_or_404(db, file_id, include_deleted=True)
        folder_id = record.folder_id
        purge_stored_object(self.registry, record)
        file_record_crud.hard_delete(db, record)
        self._refresh_folder(db, folder_id)
        logger.info("File hard deleted: %s", file_id)

    # ----------------------------
    # placement
    # ----------------------------
    def move_to_folder(self, db: Session, file_id: str, target_folder_id: Optional[str]) -> FileRecord:
        """Re-home the row; the stored object is not touched. ``None`` means root level."""
        record = self._get_or_404(db, file_id)
        self._ensure_folder(db, target_folder_id)
        previous = record.folder_id
        if previous == target_folder_id:
            return record
        record.folder_id = target_folder_id
        file_record_crud.save(db, record)
        self._refresh_folder(db, previous)
        self._refresh_folder(db, target_folder_id)
        logger.info("File %s moved from folder %s to %s", file_id, previous, target_folder_id)
        return record

    def copy_file(
        self,
        db: Session,
        file_id: str,
        target_folder_id: Optional[str] = None,
        *,
        filename: Optional[str] = None,
    ) -> FileRecord:
        """Duplicate the object with the backend's own copy and add a row for it.

        The copy lands in the source file's folder unless ``target_folder_id`` is given.
        """
        source = self._get_or_404(db, file_id)
        folder_id = target_folder_id if target_folder_id is not None else source.folder_id
        self._ensure_folder(db, folder_id)

        backend = self.registry.get_strategy(source.storage_kind)
        storage_name = filename or generate_storage_name(source.original_name or source.name)
        try:
            result = backend.copy(source.object_ref, storage_name)
        except AppException:
            raise
        except Exception as exc:
            raise BackendWriteError("copy", exc, file_id) from exc

        try:
            record = file_record_crud.create(
                db,
                {
                    "name": storage_name,
                    "original_name": source.original_name,
                    "path": result.path,
                    "url": result.url,
                    "size": result.size,
                    "content_type": source.content_type or result.content_type,
                    "extension": source.extension,
                    "storage_kind": source.storage_kind,
                    "storage_bucket": result.bucket,
                    "storage_key": result.key,
                    "folder_id": folder_id,
                    "uploaded_by": source.uploaded_by,
                    "description": source.description,
                    "tags": list(source.tags) if source.tags else source.tags,
                    "is_public": source.is_public,
                    "meta": dict(source.meta) if source.meta else source.meta,
                    "checksum": source.checksum,
                },
            )
        except Exception:
            self._compensate(backend, result)
            raise

        self._refresh_folder(db, folder_id)
        logger.info("File %s copied to %s", file_id, record.id)
        return record

    # ----------------------------
    # bulk operations
    # ----------------------------
    @staticmethod
    def _bulk(file_ids: List[str], action: Callable[[str], Any]) -> BulkOperationResult:
        result = BulkOperationResult(total=len(file_ids))
        for file_id in file_ids:
            try:
                action(file_id)
            except Exception as exc:
                logger.warning("Bulk item %s failed: %s", file_id, exc)
                result.fail(file_id, exc)
                continue
            result.ok(file_id)
        return result

    def bulk_soft_delete(
        self, db: Session, file_ids: List[str], *, deleted_by: Optional[str] = None
    ) -> BulkOperationResult:
        return self._bulk(file_ids, lambda file_id: self.soft_delete(db, file_id, deleted_by=deleted_by))

    def bulk_hard_delete(self, db: Session, file_ids: List[str]) -> BulkOperationResult:
        return self._bulk(file_ids, lambda file_id: self.hard_delete(db, file_id))

    def bulk_restore(self, db: Session, file_ids: List[str]) -> BulkOperationResult:
        return self._bulk(file_ids, lambda file_id: self.restore(db, file_id))

    def bulk_update_metadata(
        self, db: Session, file_ids: List[str], payload: FileMetadataUpdate
    ) -> BulkOperationResult:
        return self._bulk(file_ids, lambda file_id: self.update_metadata(db, file_id, payload))

    def bulk_move(
        self, db: Session, file_ids: List[str], target_folder_id: Optional[str]
    ) -> BulkOperationResult:
        return self._bulk(file_ids, lambda file_id: self.move_to_folder(db, file_id, target_folder_id))


def build_file_service(settings: Optional[Settings] = None, *, registry: Optional[BackendRegistry] = None) -> FileRecordService:
    """Wire a service from ``Settings``: configured backends plus upload validation."""
    settings = settings or get_settings()
    registry = registry or BackendRegistry.from_settings(settings)
    validation = FileValidationConfig(
        max_file_size=settings.max_file_size,
        allowed_mime_types=settings.allowed_mime_types or None,
        allowed_extensions=settings.allowed_extensions or None,
    )
    return FileRecordService(registry, validation=validation, default_kind=settings.default_storage_kind)
