"""Error taxonomy of the storage layer.

Every error is an ``AppException`` carrying a human message, an HTTP-style
status ``code`` and a structured ``data`` payload (``kind``, offending ``id``
and extras). ``retryable`` separates failures where retrying is useless
(validation, not-found, conflicts) from backend I/O that may succeed later.
"""

from typing import Any, Iterable, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class AppException(HTTPException):
    """Base error with a uniform ``{msg, data, code}`` shape."""

    kind = "error"
    retryable = False

    def __init__(
        self,
        msg: str,
        code: int = status.HTTP_400_BAD_REQUEST,
        data: Optional[dict[str, Any]] = None,
        *,
        identifier: Optional[str] = None,
    ) -> None:
        super().__init__(status_code=code, detail=msg)
        payload: dict[str, Any] = {"kind": self.kind, "id": identifier}
        if data:
            payload.update(data)
        self.data = payload
        self.identifier = identifier

    @property
    def msg(self) -> str:
        return str(self.detail)

    @property
    def code(self) -> int:
        return self.status_code

    def __str__(self) -> str:
        return self.msg


# ----------------------------
# not found
# ----------------------------
class NotFoundError(AppException):
    kind = "not_found"

    def __init__(self, msg: str, identifier: Optional[str] = None) -> None:
        super().__init__(msg, status.HTTP_404_NOT_FOUND, identifier=identifier)


class FileRecordNotFoundError(NotFoundError):
    def __init__(self, file_id: str) -> None:
        super().__init__(f"File with ID {file_id} not found", file_id)


class FolderNotFoundError(NotFoundError):
    def __init__(self, folder_id: str) -> None:
        super().__init__(f"Folder with ID {folder_id} not found", folder_id)


class ObjectNotFoundError(NotFoundError):
    """The backend has no object at the given path or key."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Stored object not found: {path}", path)


class TargetNotFoundError(NotFoundError):
    def __init__(self, target: str) -> None:
        super().__init__(f"Target file does not exist: {target}", target)


class AlreadyDeletedError(AppException):
    kind = "already_deleted"

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(
            f"{entity} with ID {identifier} is already deleted",
            status.HTTP_410_GONE,
            {"entity": entity.lower()},
            identifier=identifier,
        )


# ----------------------------
# configuration
# ----------------------------
class NotConfiguredError(AppException):
    kind = "not_configured"

    def __init__(self, msg: str, identifier: Optional[str] = None) -> None:
        super().__init__(msg, status.HTTP_500_INTERNAL_SERVER_ERROR, identifier=identifier)


class BackendNotConfiguredError(NotConfiguredError):
    def __init__(self, storage_kind: str) -> None:
        super().__init__(
            f"Storage type {storage_kind} is not configured. Please configure it in the storage settings.",
            storage_kind,
        )


class NoBackendsAvailableError(NotConfiguredError):
    def __init__(self) -> None:
        super().__init__("No storage backends available")


# ----------------------------
# validation (raised before any I/O)
# ----------------------------
class ValidationError(AppException):
    kind = "validation"

    def __init__(
        self,
        msg: str,
        identifier: Optional[str] = None,
        code: int = status.HTTP_400_BAD_REQUEST,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(msg, code, data, identifier=identifier)


class FileSizeLimitError(ValidationError):
    def __init__(self, filename: str, max_size: int, actual_size: int) -> None:
        super().__init__(
            f"File size {actual_size} bytes exceeds the maximum allowed size of {max_size} bytes",
            filename,
            413,
            {"max_size": max_size, "actual_size": actual_size},
        )


class InvalidMimeTypeError(ValidationError):
    def __init__(self, filename: str, content_type: str, allowed: Iterable[str]) -> None:
        allowed = list(allowed)
        super().__init__(
            f"MIME type {content_type} is not allowed. Allowed types: {', '.join(allowed)}",
            filename,
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            {"content_type": content_type, "allowed": allowed},
        )


class InvalidFileNameError(ValidationError):
    def __init__(self, filename: str, reason: str = "") -> None:
        msg = f"Invalid filename: {filename}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg, filename)


class FileRejectedError(ValidationError):
    """The external content scanner refused the upload."""

    def __init__(self, filename: str) -> None:
        super().__init__(f"File {filename} was rejected by the content scanner", filename)


# ----------------------------
# conflicts
# ----------------------------
class ConflictError(AppException):
    kind = "conflict"

    def __init__(self, msg: str, identifier: Optional[str] = None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, identifier=identifier)


class FolderNotEmptyError(ConflictError):
    def __init__(self, folder_id: str) -> None:
        super().__init__(
            f"Folder with ID {folder_id} is not empty. Delete or move its contents first.",
            folder_id,
        )


class CycleError(ConflictError):
    def __init__(self, folder_id: str, target_parent_id: str) -> None:
        super().__init__(
            f"Cannot move folder {folder_id} into itself or its descendant {target_parent_id}",
            folder_id,
        )
        self.data["target_parent_id"] = target_parent_id


# ----------------------------
# backend I/O
# ----------------------------
class BackendOperationError(AppException):
    kind = "backend_operation"
    retryable = True

    def __init__(self, operation: str, cause: Any, identifier: Optional[str] = None) -> None:
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"Storage operation '{operation}' failed: {reason}",
            status.HTTP_502_BAD_GATEWAY,
            {"operation": operation, "cause": reason},
            identifier=identifier,
        )
        self.operation = operation
        if isinstance(cause, BaseException):
            self.__cause__ = cause


class BackendWriteError(BackendOperationError):
    pass


class BackendReadError(BackendOperationError):
    pass


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render an ``AppException`` as the ``{msg, data, code}`` envelope for a host FastAPI app."""
    payload = {"msg": exc.msg, "data": exc.data, "code": exc.code, "retryable": exc.retryable}
    return JSONResponse(status_code=exc.code, content=payload)
