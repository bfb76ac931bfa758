"""filevault: folder-tree file metadata over pluggable storage backends."""

__version__ = "0.1.0"
