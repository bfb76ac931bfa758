"""Storage backend contract and the filesystem implementations.

Every backend answers the same calls (upload, delete, fetch, exists, signing,
metadata, copy, move) whatever holds the bytes. Paths handed back in a
``StorageResult`` are accepted again by every other call of the same backend.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence

from filevault.core.exceptions import (
    AppException,
    BackendReadError,
    BackendWriteError,
    InvalidFileNameError,
    ObjectNotFoundError,
    TargetNotFoundError,
)
from filevault.core.logger import logger
from filevault.schemas.storage import LinuxFolderConfig, LocalStorageConfig
from filevault.utils.path_utils import guess_content_type, norm_key


# ------------------------------------------
# shared data structures
# ------------------------------------------


@dataclass
class StorageResult:
    path: str
    size: int
    content_type: str = "application/octet-stream"
    url: Optional[str] = None
    key: Optional[str] = None
    bucket: Optional[str] = None


@dataclass
class DeleteResult:
    success: bool
    message: Optional[str] = None
    # the object was already absent; callers may treat this as resolved
    missing: bool = False


@dataclass
class SignedUrlOptions:
    expires_in: int = 3600
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None


class StorageBackend:
    """Storage backend interface."""

    def upload(self, content: bytes, filename: str, *, content_type: Optional[str] = None, **options: Any) -> StorageResult:
        raise NotImplementedError

    def upload_multiple(
        self,
        contents: Sequence[bytes],
        filenames: Sequence[str],
        *,
        content_type: Optional[str] = None,
        **options: Any,
    ) -> List[StorageResult]:
        """One result per input, in input order. Earlier writes stay when a later one fails."""
        if len(contents) != len(filenames):
            raise ValueError("contents and filenames must have the same length")
        return [
            self.upload(content, filename, content_type=content_type, **options)
            for content, filename in zip(contents, filenames)
        ]

    def delete(self, path: str) -> DeleteResult:
        raise NotImplementedError

    def delete_multiple(self, paths: Sequence[str]) -> List[DeleteResult]:
        """One result per input path, in input order; a rejected path does not stop the rest."""
        results: List[DeleteResult] = []
        for path in paths:
            try:
                results.append(self.delete(path))
            except AppException as exc:
                logger.warning("Delete of %s rejected in batch: %s", path, exc.msg)
                results.append(DeleteResult(success=False, message=exc.msg))
        return results

    def fetch(self, path: str) -> bytes:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def get_signed_url(self, path: str, options: Optional[SignedUrlOptions] = None) -> str:
        raise NotImplementedError

    def get_metadata(self, path: str) -> dict[str, Any]:
        raise NotImplementedError

    def copy(self, source: str, destination: str) -> StorageResult:
        raise NotImplementedError

    def move(self, source: str, destination: str) -> StorageResult:
        """Copy, then delete the source.

        A failed source delete does not fail the move: the destination copy is
        returned as the result and the leftover source is logged for cleanup.
        """
        result = self.copy(source, destination)
        outcome = self.delete(source)
        if not outcome.success:
            logger.warning(
                "Move %s -> %s left the source in place: %s",
                source,
                destination,
                outcome.message,
            )
        else:
            logger.info("Moved %s -> %s", source, destination)
        return result


class DelegatingBackend(StorageBackend):
    """Forwards every call to ``inner``; subclasses override only their hooks.

    ``upload_multiple`` and ``move`` are not forwarded so that they run through
    the subclass's own ``upload``/``copy``.
    """

    def __init__(self, inner: StorageBackend) -> None:
        self.inner = inner

    def upload(self, content: bytes, filename: str, *, content_type: Optional[str] = None, **options: Any) -> StorageResult:
        return self.inner.upload(content, filename, content_type=content_type, **options)

    def delete(self, path: str) -> DeleteResult:
        return self.inner.delete(path)

    def delete_multiple(self, paths: Sequence[str]) -> List[DeleteResult]:
        return self.inner.delete_multiple(paths)

    def fetch(self, path: str) -> bytes:
        return self.inner.fetch(path)

    def exists(self, path: str) -> bool:
        return self.inner.exists(path)

    def get_signed_url(self, path: str, options: Optional[SignedUrlOptions] = None) -> str:
        return self.inner.get_signed_url(path, options)

    def get_metadata(self, path: str) -> dict[str, Any]:
        return self.inner.get_metadata(path)

    def copy(self, source: str, destination: str) -> StorageResult:
        return self.inner.copy(source, destination)


def _stat_time(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


# ------------------------------------------
# local filesystem
# ------------------------------------------


class LocalFilesystemBackend(StorageBackend):
    def __init__(self, config: LocalStorageConfig):
        self.config = config
        self.root = Path(os.path.abspath(config.upload_path))
        self.base_url = (config.base_url or "").rstrip("/")
        if config.create_if_missing and not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise BackendWriteError("initialize", exc, str(self.root)) from exc
            logger.info("Created upload directory: %s", self.root)

    # safe path join, refuses anything outside the root
    def resolve(self, name: str) -> Path:
        raw = (name or "").strip()
        if os.path.isabs(raw):
            candidate = Path(os.path.normpath(raw))
            try:
                candidate.relative_to(self.root)
            except ValueError:
                # a leading '/' on a plain key means root-relative
                candidate = Path(os.path.normpath(os.path.join(self.root, norm_key(raw))))
        else:
            candidate = Path(os.path.normpath(os.path.join(self.root, norm_key(raw))))
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise InvalidFileNameError(name, "path escapes the storage root") from exc
        if candidate == self.root:
            raise InvalidFileNameError(name, "path points at the storage root")
        return candidate

    def key_for(self, full_path: Path) -> str:
        return full_path.relative_to(self.root).as_posix()

    def public_url(self, key: str) -> str:
        if not self.base_url:
            return ""
        return f"{self.base_url}/{key}"

    def _result(self, full_path: Path, content_type: Optional[str] = None) -> StorageResult:
        key = self.key_for(full_path)
        return StorageResult(
            path=str(full_path),
            size=int(full_path.stat().st_size),
            content_type=content_type or guess_content_type(full_path.name),
            url=self.public_url(key) or None,
            key=key,
        )

    def upload(self, content: bytes, filename: str, *, content_type: Optional[str] = None, **options: Any) -> StorageResult:
        target = self.resolve(filename)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(content)
            result = self._result(target, content_type)
        except OSError as exc:
            logger.error("Upload failed for %s: %s", filename, exc, exc_info=True)
            raise BackendWriteError("upload", exc, filename) from exc
        logger.info("File uploaded successfully: %s", result.key)
        return result

    def delete(self, path: str) -> DeleteResult:
        target = self.resolve(path)
        if not target.is_file() and not target.is_symlink():
            return DeleteResult(success=False, message="File not found", missing=True)
        try:
            target.unlink()
        except FileNotFoundError:
            return DeleteResult(success=False, message="File not found", missing=True)
        except OSError as exc:
            logger.error("Delete failed for %s: %s", path, exc)
            return DeleteResult(success=False, message=str(exc))
        logger.info("File deleted successfully: %s", path)
        return DeleteResult(success=True, message="File deleted successfully")

    def fetch(self, path: str) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise ObjectNotFoundError(path) from exc
        except OSError as exc:
            logger.error("Get file failed for %s: %s", path, exc)
            raise BackendReadError("fetch", exc, path) from exc

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_file()
        except InvalidFileNameError:
            return False

    def get_signed_url(self, path: str, options: Optional[SignedUrlOptions] = None) -> str:
        # no signing on a plain directory; hand back the static URL
        return self.public_url(self.key_for(self.resolve(path)))

    def get_metadata(self, path: str) -> dict[str, Any]:
        target = self.resolve(path)
        try:
            st = target.stat()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(path) from exc
        except OSError as exc:
            logger.error("Get metadata failed for %s: %s", path, exc)
            raise BackendReadError("get_metadata", exc, path) from exc
        return {
            "size": int(st.st_size),
            "content_type": guess_content_type(target.name),
            "created_at": _stat_time(st.st_ctime),
            "last_modified": _stat_time(st.st_mtime),
            "is_file": target.is_file(),
            "is_directory": target.is_dir(),
        }

    def copy(self, source: str, destination: str) -> StorageResult:
        src = self.resolve(source)
        dst = self.resolve(destination)
        if not src.is_file():
            raise ObjectNotFoundError(source)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            result = self._result(dst)
        except OSError as exc:
            logger.error("Copy failed %s -> %s: %s", source, destination, exc)
            raise BackendWriteError("copy", exc, source) from exc
        logger.info("File copied from %s to %s", source, destination)
        return result


# ------------------------------------------
# permission-managed directory
# ------------------------------------------


class PermissionedFilesystemBackend(DelegatingBackend):
    """A local directory whose written files get a fixed mode and optional owner.

    Applying mode/owner is best-effort: the write has already happened, so a
    failure (usually missing privilege for chown) is logged and ignored.
    """

    inner: LocalFilesystemBackend

    def __init__(self, config: LinuxFolderConfig, inner: Optional[LocalFilesystemBackend] = None):
        super().__init__(inner or LocalFilesystemBackend(config))
        self.config = config
        self.mode = config.mode
        self.owner = config.owner
        logger.info("Linux folder backend ready at %s (mode %s)", self.inner.root, config.permissions)

    def _apply_permissions(self, full_path: str) -> None:
        try:
            os.chmod(full_path, self.mode)
            if self.owner is not None:
                os.chown(full_path, self.owner.uid, self.owner.gid)
        except (OSError, AttributeError) as exc:
            logger.warning("Failed to set permissions for %s: %s", full_path, exc)
            return
        logger.debug("Permissions set for %s: %s", full_path, self.config.permissions)

    def upload(self, content: bytes, filename: str, *, content_type: Optional[str] = None, **options: Any) -> StorageResult:
        result = self.inner.upload(content, filename, content_type=content_type, **options)
        self._apply_permissions(result.path)
        return result

    def copy(self, source: str, destination: str) -> StorageResult:
        result = self.inner.copy(source, destination)
        self._apply_permissions(result.path)
        return result

    def get_metadata(self, path: str) -> dict[str, Any]:
        metadata = self.inner.get_metadata(path)
        st = self.inner.resolve(path).stat()
        metadata.update(
            {
                "mode": st.st_mode,
                "permissions": format(st.st_mode & 0o777, "o"),
                "uid": st.st_uid,
                "gid": st.st_gid,
                "inode": st.st_ino,
                "nlink": st.st_nlink,
            }
        )
        return metadata

    # symlinks are only reachable on this backend
    def create_symlink(self, target: str, link: str) -> None:
        target_path = self.inner.resolve(target)
        link_path = self.inner.resolve(link)
        if not target_path.exists():
            raise TargetNotFoundError(target)
        try:
            link_path.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(target_path, link_path)
        except OSError as exc:
            logger.error("Failed to create symlink %s -> %s: %s", link, target, exc)
            raise BackendWriteError("create_symlink", exc, link) from exc
        logger.info("Symlink created: %s -> %s", link, target)

    def is_symlink(self, path: str) -> bool:
        try:
            return self.inner.resolve(path).is_symlink()
        except (InvalidFileNameError, OSError):
            return False

    def read_symlink(self, path: str) -> str:
        link_path = self.inner.resolve(path)
        try:
            return os.readlink(link_path)
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(path) from exc
        except OSError as exc:
            logger.error("Failed to read symlink %s: %s", path, exc)
            raise BackendReadError("read_symlink", exc, path) from exc
