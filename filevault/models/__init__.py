"""ORM entities; importing this package registers every table on ``Base.metadata``."""

from filevault.models.base import Base
from filevault.models.file_record import FileRecord
from filevault.models.folder import Folder, FolderClosure

__all__ = ["Base", "FileRecord", "Folder", "FolderClosure"]
