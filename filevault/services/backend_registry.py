"""Backend registry: kind tag -> initialised backend.

Built once from ``StorageConfigs``; kinds without configuration are skipped.
Only ``register_strategy``/``unregister_strategy`` mutate it afterwards.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from filevault.core.config import Settings, get_settings
from filevault.core.enums import StorageKind
from filevault.core.exceptions import BackendNotConfiguredError, NoBackendsAvailableError
from filevault.core.logger import logger
from filevault.schemas.storage import StorageConfigs
from filevault.services.object_store_backends import CdnObjectStoreBackend, ObjectStoreBackend
from filevault.services.storage_backends import (
    LocalFilesystemBackend,
    PermissionedFilesystemBackend,
    StorageBackend,
)


def _kind_value(kind: Any) -> str:
    return kind.value if isinstance(kind, StorageKind) else str(kind)


def build_backend(kind: Any, config: Any) -> StorageBackend:
    """Instantiate the built-in backend for ``kind`` from its configuration record."""
    t = _kind_value(kind)
    if t == StorageKind.LOCAL.value:
        return LocalFilesystemBackend(config)
    if t == StorageKind.LINUX_FOLDER.value:
        return PermissionedFilesystemBackend(config)
    if t == StorageKind.AWS_S3.value:
        return ObjectStoreBackend(config)
    if t == StorageKind.DIGITAL_OCEAN.value:
        return CdnObjectStoreBackend(config)
    raise BackendNotConfiguredError(t)


class BackendRegistry:
    def __init__(self, configs: Optional[StorageConfigs] = None, *, default_kind: Optional[str] = None):
        self._backends: Dict[str, StorageBackend] = {}
        self.default_kind = _kind_value(default_kind) if default_kind else None
        configs = configs or StorageConfigs()
        # insertion order decides the fallback default
        for kind in (StorageKind.LOCAL, StorageKind.AWS_S3, StorageKind.DIGITAL_OCEAN, StorageKind.LINUX_FOLDER):
            config = getattr(configs, kind.value)
            if config is None:
                continue
            self._backends[kind.value] = build_backend(kind, config)
            logger.info("Storage backend initialised: %s", kind.value)
        if not self._backends:
            logger.warning("No storage backends configured")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BackendRegistry":
        settings = settings or get_settings()
        return cls(settings.storage_configs, default_kind=settings.default_storage_kind)

    def get_strategy(self, kind: Any) -> StorageBackend:
        t = _kind_value(kind)
        backend = self._backends.get(t)
        if backend is None:
            raise BackendNotConfiguredError(t)
        return backend

    def get_default_strategy(self) -> StorageBackend:
        """The configured default kind when registered, else the first registered backend."""
        if self.default_kind and self.default_kind in self._backends:
            return self._backends[self.default_kind]
        if not self._backends:
            raise NoBackendsAvailableError()
        return next(iter(self._backends.values()))

    def default_kind_name(self) -> str:
        """Kind tag of ``get_default_strategy()``."""
        if self.default_kind and self.default_kind in self._backends:
            return self.default_kind
        if not self._backends:
            raise NoBackendsAvailableError()
        return next(iter(self._backends))

    def has_strategy(self, kind: Any) -> bool:
        return _kind_value(kind) in self._backends

    def available_kinds(self) -> List[str]:
        return list(self._backends)

    def register_strategy(self, kind: Any, backend: StorageBackend) -> None:
        """Add or replace the backend for ``kind``; custom kind strings are allowed."""
        t = _kind_value(kind)
        self._backends[t] = backend
        logger.info("Storage backend registered for kind: %s", t)

    def unregister_strategy(self, kind: Any) -> None:
        t = _kind_value(kind)
        if self._backends.pop(t, None) is not None:
            logger.info("Storage backend unregistered for kind: %s", t)
