"""Inputs and results of the folder tree."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from filevault.models.folder import Folder


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[str] = None
    description: Optional[str] = None
    is_public: bool = True
    metadata: Optional[dict[str, Any]] = None
    created_by: Optional[str] = None


class FolderUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_public: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class FolderStats(BaseModel):
    count: int = 0
    total_size: int = 0


@dataclass
class FolderNode:
    folder: Folder
    children: List["FolderNode"] = field(default_factory=list)
