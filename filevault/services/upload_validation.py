"""Upload checks run before any folder lookup, backend call or row write."""

from __future__ import annotations

from typing import Iterable, Optional

from filevault.core.exceptions import (
    FileRejectedError,
    FileSizeLimitError,
    InvalidFileNameError,
    InvalidMimeTypeError,
    ValidationError,
)
from filevault.core.logger import logger
from filevault.schemas.files import FileValidationConfig
from filevault.utils.path_utils import bare_extension, filename_problem


def _mime_allowed(content_type: str, allowed: Iterable[str]) -> bool:
    content_type = content_type.lower()
    for pattern in allowed:
        pattern = pattern.strip().lower()
        if pattern == content_type:
            return True
        # "image/*" style wildcard
        if pattern.endswith("/*") and content_type.startswith(pattern[:-1]):
            return True
    return False


def validate_upload(
    content: bytes,
    filename: str,
    content_type: str,
    config: Optional[FileValidationConfig],
) -> None:
    """Size, MIME type, extension, filename, then the external scanner hook."""
    config = config or FileValidationConfig()

    if config.max_file_size is not None and len(content) > config.max_file_size:
        raise FileSizeLimitError(filename, config.max_file_size, len(content))

    if config.allowed_mime_types and not _mime_allowed(content_type, config.allowed_mime_types):
        raise InvalidMimeTypeError(filename, content_type, config.allowed_mime_types)

    if config.allowed_extensions:
        allowed = {ext.lstrip(".").lower() for ext in config.allowed_extensions}
        ext = bare_extension(filename)
        if ext is None or ext not in allowed:
            raise ValidationError(
                f"File extension {ext or '(none)'} is not allowed. Allowed extensions: {', '.join(sorted(allowed))}",
                filename,
                data={"extension": ext, "allowed": sorted(allowed)},
            )

    problem = filename_problem(filename)
    if problem:
        raise InvalidFileNameError(filename, problem)

    if config.virus_scan_hook is not None:
        if not config.virus_scan_hook(content, filename, content_type):
            logger.warning("Upload %s rejected by the content scanner", filename)
            raise FileRejectedError(filename)
