"""Per-target storage manager.

Each kind of stored artifact lives in its own directory under the
target-scoped base directory and is managed by a dedicated storage.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from bundles.descriptor import read_bundle_descriptor
from core.config import TargetStoreConfig
from core.constants import (
    APPLICATION_DIR_NAME,
    APPLICATION_ROOT_TOKEN,
    DSYM_DIR_NAME,
    DSYM_ROOT_TOKEN,
    DYLIB_DIR_NAME,
    DYLIB_ROOT_TOKEN,
    FRAMEWORK_DIR_NAME,
    FRAMEWORK_ROOT_TOKEN,
    XCTEST_DIR_NAME,
    XCTEST_EXTENSION,
    XCTEST_ROOT_TOKEN,
    XCTESTRUN_EXTENSION,
)
from core.errors import StorageInitializationError, TargetStoreError, UnresolvableInputError
from core.logging_config import get_logger
from core.target import StorageTarget
from core.types import SUPPORTED_ARTIFACT_KINDS, ArtifactKind, StorageResult
from storage.application_storage import ApplicationBundleStorage
from storage.bundle_storage import BundleStorage
from storage.environment import interpolate_environment
from storage.file_storage import FileStorage
from storage.xctest_storage import XCTestBundleStorage

_LOGGER = get_logger(__name__)


class StorageManager:
    """Owns one storage of each artifact kind for a single target."""

    def __init__(
        self,
        target: StorageTarget,
        base_path: Path,
        xctest: XCTestBundleStorage,
        application: ApplicationBundleStorage,
        dylib: FileStorage,
        dsym: BundleStorage,
        framework: BundleStorage,
    ) -> None:
        self.target = target
        self.base_path = base_path
        self.xctest = xctest
        self.application = application
        self.dylib = dylib
        self.dsym = dsym
        self.framework = framework

    @classmethod
    def for_target(
        cls,
        target: StorageTarget,
        logger: Any | None = None,
        config: TargetStoreConfig | None = None,
    ) -> StorageResult["StorageManager"]:
        """Build the storages for a target under the configured data root.

        Args:
            target: Target whose udid names the base directory.
            logger: Optional logger shared by all storages.
            config: Runtime config; read from the environment when omitted.

        Returns:
            Result with the manager, or the first initialization failure.
        """
        try:
            runtime_config = config if config is not None else TargetStoreConfig.from_env()
            base_path = _target_base_path(runtime_config.data_root, target.udid)
        except TargetStoreError as error:
            return StorageResult.failure(error)
        built: list[Any] = []
        try:
            xctest = XCTestBundleStorage(
                target, base_path / XCTEST_DIR_NAME, XCTEST_ROOT_TOKEN, logger
            )
            built.append(xctest)
            application = ApplicationBundleStorage(
                target, base_path / APPLICATION_DIR_NAME, APPLICATION_ROOT_TOKEN, logger
            )
            built.append(application)
            dylib = FileStorage(
                target, base_path / DYLIB_DIR_NAME, DYLIB_ROOT_TOKEN, logger, kind="dylib"
            )
            built.append(dylib)
            dsym = BundleStorage(
                target, base_path / DSYM_DIR_NAME, DSYM_ROOT_TOKEN, logger, kind="dsym"
            )
            built.append(dsym)
            framework = BundleStorage(
                target,
                base_path / FRAMEWORK_DIR_NAME,
                FRAMEWORK_ROOT_TOKEN,
                logger,
                kind="framework",
            )
            built.append(framework)
        except TargetStoreError as error:
            for storage in built:
                storage.close()
            _LOGGER.error("storage_manager_failed", udid=target.udid, error=str(error))
            return StorageResult.failure(error)
        _LOGGER.info("storage_manager_ready", udid=target.udid, base_path=str(base_path))
        return StorageResult.success(
            cls(target, base_path, xctest, application, dylib, dsym, framework)
        )

    @property
    def replacements(self) -> dict[str, str]:
        """Placeholder tokens mapped onto every storage root."""
        mapping: dict[str, str] = {}
        for storage in self._storages():
            mapping.update(storage.replacement_mapping)
        return mapping

    def interpolate_environment_replacements(
        self, environment: Mapping[str, str]
    ) -> dict[str, str]:
        """Substitute storage-root placeholders inside environment values."""
        return interpolate_environment(environment, self.replacements)

    def save_artifact(self, kind: ArtifactKind, path: Path) -> StorageResult[str]:
        """Persist an artifact into the storage matching its kind.

        Args:
            kind: Artifact kind.
            path: File, bundle, or containing directory to persist.

        Returns:
            Result with the bundle id (xctest) or the stored path.
        """
        path = Path(path)
        if kind == "xctest":
            if path.suffix in (XCTEST_EXTENSION, XCTESTRUN_EXTENSION):
                return self.xctest.save_bundle_or_test_run(path)
            return self.xctest.save_bundle_or_test_run_from_base_directory(path)
        if kind == "dylib":
            return _as_text(self.dylib.save_file(path))
        if kind not in SUPPORTED_ARTIFACT_KINDS:
            return StorageResult.failure(
                UnresolvableInputError(
                    f"Unsupported artifact kind '{kind}'. "
                    f"Supported kinds: {list(SUPPORTED_ARTIFACT_KINDS)}."
                )
            )
        try:
            bundle = read_bundle_descriptor(path)
        except TargetStoreError as error:
            return StorageResult.failure(error)
        storage = {"application": self.application, "dsym": self.dsym, "framework": self.framework}
        return _as_text(storage[kind].save_bundle(bundle))

    def list_artifacts(self, kind: ArtifactKind) -> StorageResult[tuple[str, ...]]:
        """List stored artifact keys of one kind, sorted."""
        if kind == "xctest":
            descriptors = self.xctest.list_test_descriptors()
            if descriptors.error is not None:
                return StorageResult.failure(descriptors.error)
            return StorageResult.success(
                tuple(descriptor.bundle_id for descriptor in descriptors.unwrap())
            )
        if kind == "application":
            bundle_ids = self.application.persisted_application_bundle_ids
            return StorageResult.success(tuple(sorted(bundle_ids)))
        if kind == "dylib":
            files = self.dylib.list_files()
            if files.error is not None:
                return StorageResult.failure(files.error)
            return StorageResult.success(tuple(path.name for path in files.unwrap()))
        if kind in ("dsym", "framework"):
            storage = self.dsym if kind == "dsym" else self.framework
            bundle_ids = storage.persisted_bundle_ids()
            if bundle_ids.error is not None:
                return StorageResult.failure(bundle_ids.error)
            return StorageResult.success(tuple(sorted(bundle_ids.unwrap())))
        return StorageResult.failure(
            UnresolvableInputError(f"Unsupported artifact kind '{kind}'.")
        )

    def clean(self) -> StorageResult[int]:
        """Remove every stored artifact of every kind.

        Returns:
            Result with the total number of removed entries, or the first failure.
        """
        removed = 0
        for storage in self._storages():
            result = storage.clean()
            if result.error is not None:
                return StorageResult.failure(result.error)
            removed += result.unwrap()
        _LOGGER.info("storage_cleaned", udid=self.target.udid, removed=removed)
        return StorageResult.success(removed)

    def close(self) -> None:
        for storage in self._storages():
            storage.close()

    def __enter__(self) -> "StorageManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _storages(self) -> tuple[Any, ...]:
        return (self.xctest, self.application, self.dylib, self.dsym, self.framework)


def _target_base_path(data_root: Path, udid: str) -> Path:
    if not udid or udid in (".", "..") or "/" in udid or "\\" in udid:
        raise StorageInitializationError(
            f"Target udid '{udid}' cannot name a storage directory. "
            "Provide a non-empty udid without path separators."
        )
    return data_root / udid


def _as_text(result: StorageResult[Path]) -> StorageResult[str]:
    if result.error is not None:
        return StorageResult.failure(result.error)
    return StorageResult.success(str(result.unwrap()))
