"""Unit tests for the per-target storage manager."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from core.config import TargetStoreConfig
from core.errors import (
    ArchitectureMismatchError,
    StorageInitializationError,
    UnresolvableInputError,
)
from core.target import LocalTarget
from storage.manager import StorageManager
from tests.bundle_factory import make_bundle, make_dsym

TARGET = LocalTarget(udid="T1", architecture="arm64")


@pytest.fixture()
def manager(tmp_path):
    config = TargetStoreConfig(data_root=tmp_path / "data")
    storage_manager = StorageManager.for_target(TARGET, config=config).unwrap()
    yield storage_manager
    storage_manager.close()


def test_for_target_creates_kind_directories(manager, tmp_path) -> None:
    """Every artifact kind should get its own directory under the udid."""
    base_path = tmp_path / "data" / "T1"

    assert manager.base_path == base_path
    assert sorted(child.name for child in base_path.iterdir()) == [
        "application",
        "dsym",
        "dylib",
        "framework",
        "xctest",
    ]


@pytest.mark.parametrize("udid", ["", "..", "a/b"])
def test_for_target_rejects_unusable_udid(tmp_path, udid: str) -> None:
    """Udids that cannot name a directory should fail construction."""
    config = TargetStoreConfig(data_root=tmp_path / "data")

    result = StorageManager.for_target(LocalTarget(udid=udid, architecture="arm64"), config=config)

    assert isinstance(result.error, StorageInitializationError)


def test_for_target_fails_when_data_root_is_file(tmp_path) -> None:
    """A data root that is a regular file cannot hold storages."""
    data_root = tmp_path / "data"
    data_root.write_text("occupied", encoding="utf-8")

    result = StorageManager.for_target(TARGET, config=TargetStoreConfig(data_root=data_root))

    assert isinstance(result.error, StorageInitializationError)


def test_replacements_cover_every_root(manager, tmp_path) -> None:
    """Each storage root should have its placeholder token."""
    base_path = tmp_path / "data" / "T1"

    assert manager.replacements == {
        "$IDB_XCTEST_ROOT": str(base_path / "xctest"),
        "$IDB_APPLICATION_ROOT": str(base_path / "application"),
        "$IDB_DYLIB_ROOT": str(base_path / "dylib"),
        "$IDB_DSYM_ROOT": str(base_path / "dsym"),
        "$IDB_FRAMEWORK_ROOT": str(base_path / "framework"),
    }


def test_interpolate_environment_replacements() -> None:
    """Dylib placeholders should expand to the target's dylib directory."""
    storage_manager = StorageManager(
        TARGET, Path("/data/T1"), *[_FakeStorage(token) for token in _TOKENS]
    )

    interpolated = storage_manager.interpolate_environment_replacements(
        {"DYLD_INSERT_LIBRARIES": "$IDB_DYLIB_ROOT/libinject.dylib"}
    )

    assert interpolated == {"DYLD_INSERT_LIBRARIES": "/data/T1/dylib/libinject.dylib"}


def test_save_artifact_routes_by_kind(manager, tmp_path) -> None:
    """Each kind should land in its own storage and be listable."""
    upload = tmp_path / "upload"
    upload.mkdir()
    dylib = upload / "libinject.dylib"
    dylib.write_bytes(b"dylib")
    saved = {
        "xctest": manager.save_artifact(
            "xctest", make_bundle(upload, "FooTests.xctest", "com.example.FooTests")
        ).unwrap(),
        "application": manager.save_artifact(
            "application", make_bundle(upload, "Host.app", "com.example.host")
        ).unwrap(),
        "dylib": manager.save_artifact("dylib", dylib).unwrap(),
        "dsym": manager.save_artifact(
            "dsym", make_dsym(upload, "Host.app.dSYM", "com.apple.xcode.dsym.host")
        ).unwrap(),
        "framework": manager.save_artifact(
            "framework", make_bundle(upload, "Kit.framework", "com.example.kit")
        ).unwrap(),
    }

    assert saved["xctest"] == "com.example.FooTests"
    assert saved["dylib"] == str(tmp_path / "data" / "T1" / "dylib" / "libinject.dylib")
    assert manager.list_artifacts("xctest").unwrap() == ("com.example.FooTests",)
    assert manager.list_artifacts("application").unwrap() == ("com.example.host",)
    assert manager.list_artifacts("dylib").unwrap() == ("libinject.dylib",)
    assert manager.list_artifacts("dsym").unwrap() == ("com.apple.xcode.dsym.host",)
    assert manager.list_artifacts("framework").unwrap() == ("com.example.kit",)


def test_save_artifact_xctest_from_directory(manager, tmp_path) -> None:
    """Directories without a test suffix should be searched for tests."""
    upload = tmp_path / "extracted"
    make_bundle(upload, "FooTests.xctest", "com.example.FooTests")

    bundle_id = manager.save_artifact("xctest", upload).unwrap()

    assert bundle_id == "com.example.FooTests"


def test_save_artifact_reports_architecture_mismatch(manager, tmp_path) -> None:
    bundle_path = make_bundle(tmp_path / "upload", "Host.app", "com.example.host", ("x86_64",))

    result = manager.save_artifact("application", bundle_path)

    assert isinstance(result.error, ArchitectureMismatchError)


def test_save_artifact_rejects_unknown_kind(manager, tmp_path) -> None:
    """Unknown kinds should fail without raising."""
    result = manager.save_artifact("kext", tmp_path)  # type: ignore[arg-type]

    assert isinstance(result.error, UnresolvableInputError)


def test_concurrent_saves_all_persist(manager, tmp_path) -> None:
    """Concurrent saves from many threads should all be stored."""
    upload = tmp_path / "upload"
    upload.mkdir()
    sources = []
    for index in range(12):
        source = upload / f"lib{index}.dylib"
        source.write_bytes(bytes([index]))
        sources.append(source)
    results = []
    lock = threading.Lock()

    def save(source: Path) -> None:
        result = manager.save_artifact("dylib", source)
        with lock:
            results.append(result)

    threads = [threading.Thread(target=save, args=(source,)) for source in sources]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(result.ok for result in results) and len(results) == 12
    assert len(manager.list_artifacts("dylib").unwrap()) == 12


def test_clean_removes_every_kind(manager, tmp_path) -> None:
    """Clean should sum removals across storages and leave them empty."""
    upload = tmp_path / "upload"
    upload.mkdir()
    dylib = upload / "libinject.dylib"
    dylib.write_bytes(b"dylib")
    manager.save_artifact("dylib", dylib).unwrap()
    manager.save_artifact("application", make_bundle(upload, "Host.app", "com.example.host")).unwrap()

    removed = manager.clean().unwrap()

    assert removed == 2
    assert manager.list_artifacts("application").unwrap() == ()
    assert manager.list_artifacts("dylib").unwrap() == ()


_TOKENS = (
    ("$IDB_XCTEST_ROOT", "/data/T1/xctest"),
    ("$IDB_APPLICATION_ROOT", "/data/T1/application"),
    ("$IDB_DYLIB_ROOT", "/data/T1/dylib"),
    ("$IDB_DSYM_ROOT", "/data/T1/dsym"),
    ("$IDB_FRAMEWORK_ROOT", "/data/T1/framework"),
)


class _FakeStorage:
    def __init__(self, token: tuple[str, str]) -> None:
        self.replacement_mapping = {token[0]: token[1]}

    def close(self) -> None:
        return None
