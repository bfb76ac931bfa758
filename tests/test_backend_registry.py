"""Backend registry: construction from configuration, lookups, runtime registration."""

import pytest

from filevault.core.config import Settings
from filevault.core.enums import StorageKind
from filevault.core.exceptions import (
    BackendNotConfiguredError,
    NoBackendsAvailableError,
    NotConfiguredError,
)
from filevault.schemas.storage import (
    CdnObjectStoreConfig,
    LinuxFolderConfig,
    LocalStorageConfig,
    ObjectStoreConfig,
    StorageConfigs,
)
from filevault.services.backend_registry import BackendRegistry, build_backend
from filevault.services.object_store_backends import CdnObjectStoreBackend, ObjectStoreBackend
from filevault.services.storage_backends import (
    LocalFilesystemBackend,
    PermissionedFilesystemBackend,
    StorageBackend,
)


class _MemoryBackend(StorageBackend):
    """Minimal custom backend used to exercise registration."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}


def test_only_configured_kinds_are_built(local_config):
    registry = BackendRegistry(StorageConfigs(local=local_config))

    assert registry.available_kinds() == ["local"]
    assert registry.has_strategy(StorageKind.LOCAL)
    assert not registry.has_strategy("aws_s3")
    assert isinstance(registry.get_strategy("local"), LocalFilesystemBackend)


def test_unconfigured_kind_raises_not_configured(local_config):
    registry = BackendRegistry(StorageConfigs(local=local_config))

    with pytest.raises(BackendNotConfiguredError) as exc_info:
        registry.get_strategy("aws_s3")

    err = exc_info.value
    assert isinstance(err, NotConfiguredError)
    assert "aws_s3" in err.msg
    assert err.data == {"kind": "not_configured", "id": "aws_s3"}
    assert err.retryable is False


def test_empty_registry_has_no_default():
    registry = BackendRegistry(StorageConfigs())

    assert registry.available_kinds() == []
    with pytest.raises(NoBackendsAvailableError):
        registry.get_default_strategy()


def test_default_is_first_registered_unless_configured(local_config, tmp_path):
    configs = StorageConfigs(
        local=local_config,
        linux_folder=LinuxFolderConfig(upload_path=str(tmp_path / "linux")),
    )

    plain = BackendRegistry(configs)
    preferred = BackendRegistry(configs, default_kind="linux_folder")

    assert isinstance(plain.get_default_strategy(), LocalFilesystemBackend)
    assert plain.default_kind_name() == "local"
    assert isinstance(preferred.get_default_strategy(), PermissionedFilesystemBackend)
    assert preferred.default_kind_name() == "linux_folder"


def test_unknown_default_kind_falls_back_to_first(local_config):
    registry = BackendRegistry(StorageConfigs(local=local_config), default_kind="aws_s3")

    assert registry.default_kind_name() == "local"


def test_register_and_unregister_custom_kind(local_config):
    registry = BackendRegistry(StorageConfigs(local=local_config))
    memory = _MemoryBackend()

    registry.register_strategy("memory", memory)
    assert registry.get_strategy("memory") is memory
    assert registry.available_kinds() == ["local", "memory"]

    registry.unregister_strategy("memory")
    assert not registry.has_strategy("memory")
    # removing an unknown kind is a no-op
    registry.unregister_strategy("memory")


def test_register_replaces_existing_backend(local_config):
    registry = BackendRegistry(StorageConfigs(local=local_config))
    replacement = _MemoryBackend()

    registry.register_strategy(StorageKind.LOCAL, replacement)

    assert registry.get_strategy("local") is replacement


def test_build_backend_maps_every_builtin_kind(tmp_path):
    s3 = ObjectStoreConfig(region="us-east-1", access_key_id="k", secret_access_key="s", bucket="b")
    spaces = CdnObjectStoreConfig(region="ams3", access_key_id="k", secret_access_key="s", bucket="b")

    assert isinstance(build_backend("local", LocalStorageConfig(upload_path=str(tmp_path / "l"))), LocalFilesystemBackend)
    assert isinstance(
        build_backend(StorageKind.LINUX_FOLDER, LinuxFolderConfig(upload_path=str(tmp_path / "p"))),
        PermissionedFilesystemBackend,
    )
    assert isinstance(build_backend("aws_s3", s3), ObjectStoreBackend)
    assert isinstance(build_backend("digital_ocean", spaces), CdnObjectStoreBackend)
    with pytest.raises(BackendNotConfiguredError):
        build_backend("ftp", None)


def test_from_settings_builds_configured_backends(tmp_path):
    settings = Settings(
        LOCAL_UPLOAD_PATH=str(tmp_path / "from-settings"),
        LOCAL_BASE_URL="http://cdn.local",
        DEFAULT_STORAGE_KIND="local",
    )

    registry = BackendRegistry.from_settings(settings)

    assert registry.available_kinds() == ["local"]
    backend = registry.get_default_strategy()
    assert backend.upload(b"x", "a.txt").url == "http://cdn.local/a.txt"
