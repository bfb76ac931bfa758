"""Name helpers shared by the backends and the file service.

- Storage names are relative, '/'-separated and never escape their root;
- Extensions are reported lower-case without the leading dot.
"""

from __future__ import annotations

import mimetypes
import os
import uuid
from typing import Optional


def norm_key(name: str | None) -> str:
    """Relative object key: backslashes folded, leading '/' and empty segments dropped."""
    text = (name or "").strip().replace("\\", "/")
    parts = [part for part in text.split("/") if part and part != "."]
    return "/".join(parts)


def split_extension(filename: str | None) -> str:
    """``"Report.PDF"`` -> ``".PDF"``; empty when there is none."""
    return os.path.splitext(os.path.basename(filename or ""))[1]


def bare_extension(filename: str | None) -> Optional[str]:
    ext = split_extension(filename).lstrip(".").lower()
    return ext or None


def generate_storage_name(original_name: str | None) -> str:
    """Fresh unique name keeping the original extension."""
    return f"{uuid.uuid4().hex}{split_extension(original_name).lower()}"


def guess_content_type(name: str | None) -> str:
    mime, _ = mimetypes.guess_type(name or "")
    return mime or "application/octet-stream"


def filename_problem(filename: str | None) -> Optional[str]:
    """Reason the client filename is unusable, or ``None`` when it is fine."""
    if filename is None or not filename.strip():
        return "empty name"
    if "\x00" in filename:
        return "contains NUL"
    if "/" in filename or "\\" in filename:
        return "contains a path separator"
    if filename.strip() in (".", ".."):
        return "reserved name"
    return None
