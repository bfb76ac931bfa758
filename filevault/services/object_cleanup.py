"""Backend-first removal of the object behind a file row."""

from __future__ import annotations

from filevault.core.exceptions import BackendOperationError
from filevault.core.logger import logger
from filevault.models.file_record import FileRecord
from filevault.services.backend_registry import BackendRegistry


def purge_stored_object(registry: BackendRegistry, record: FileRecord) -> None:
    """Delete the record's object; return only when it is gone.

    An object that was already absent counts as gone. Any other failure raises
    ``BackendOperationError`` so the caller keeps the row, which is then the
    only trace of the leaked object.
    """
    backend = registry.get_strategy(record.storage_kind)
    ref = record.object_ref
    outcome = backend.delete(ref)
    if outcome.success or outcome.missing:
        if outcome.missing:
            logger.info("Object for file %s was already absent: %s", record.id, ref)
        return
    if not backend.exists(ref):
        return
    raise BackendOperationError("delete", outcome.message or "backend delete failed", record.id)
