"""Application bundle storage with a bundle-id index."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from core.constants import APPLICATION_EXTENSION
from core.errors import StorageInitializationError, UnresolvableInputError
from core.target import StorageTarget
from core.types import BundleDescriptor, StorageResult
from storage.bundle_storage import ensure_architecture, persist_bundle, scan_persisted_bundles
from storage.primitive import StoragePrimitive


class ApplicationBundleStorage:
    """Storage for ``.app`` bundles.

    The index of persisted applications is rebuilt from the directory on
    construction, after each successful save, and after ``clean``. Both
    views read the same index on the storage queue, so they always agree.
    """

    def __init__(
        self,
        target: StorageTarget,
        root: Path,
        replacement_token: str,
        logger: Any | None = None,
    ) -> None:
        self._primitive = StoragePrimitive(
            target, root, "application", replacement_token, logger
        )
        self._applications: dict[str, BundleDescriptor] = {}
        result = self._primitive.execute(self._rebuild_index)
        if result.error is not None:
            self._primitive.close()
            raise StorageInitializationError(
                f"Failed to index application storage at {root}: {result.error}"
            ) from result.error

    @property
    def root(self) -> Path:
        return self._primitive.root

    @property
    def replacement_mapping(self) -> dict[str, str]:
        return self._primitive.replacement_mapping

    @property
    def persisted_application_bundle_ids(self) -> frozenset[str]:
        """Bundle ids of all persisted applications."""
        return self._primitive.execute(lambda: frozenset(self._applications)).unwrap()

    @property
    def persisted_applications(self) -> dict[str, BundleDescriptor]:
        """Mapping of bundle ids to persisted application descriptors."""
        return self._primitive.execute(lambda: dict(self._applications)).unwrap()

    def check_architecture(self, bundle: BundleDescriptor) -> StorageResult[None]:
        return self._primitive.execute(
            lambda: ensure_architecture(self._primitive.target, bundle)
        )

    def save_bundle(self, bundle: BundleDescriptor) -> StorageResult[Path]:
        """Persist an application bundle and refresh the index."""
        return self._primitive.execute(lambda: self._save_application(bundle))

    def rebuild_index(self) -> StorageResult[frozenset[str]]:
        """Re-scan the storage directory and return the indexed bundle ids."""

        def rebuild() -> frozenset[str]:
            self._rebuild_index()
            return frozenset(self._applications)

        return self._primitive.execute(rebuild)

    def clean(self) -> StorageResult[int]:
        def clean_and_rebuild() -> int:
            removed = self._primitive.remove_all()
            self._rebuild_index()
            return removed

        return self._primitive.execute(clean_and_rebuild)

    def close(self) -> None:
        self._primitive.close()

    def _save_application(self, bundle: BundleDescriptor) -> Path:
        if bundle.path.suffix != APPLICATION_EXTENSION:
            raise UnresolvableInputError(
                f"Bundle {bundle.path} is not an {APPLICATION_EXTENSION} bundle. "
                "Save other bundle kinds into their own storage."
            )
        persisted_path = persist_bundle(self._primitive, bundle)
        self._rebuild_index()
        return persisted_path

    def _rebuild_index(self) -> None:
        self._applications = scan_persisted_bundles(self._primitive, APPLICATION_EXTENSION)
        self._primitive.logger.debug(
            "application_index_rebuilt", bundle_ids=sorted(self._applications)
        )
