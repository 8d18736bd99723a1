"""Bundle storage with architecture gating.

Bundles are persisted under ``root/<bundle identifier>/<bundle dir>`` so a
later save with the same identifier supersedes the earlier copy. The
module-level helpers run inside a storage queue task and are shared by
the test and application bundle storages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from bundles.descriptor import read_bundle_descriptor
from core.errors import (
    ArchitectureMismatchError,
    BundleDescriptorError,
    StorageIOError,
)
from core.target import StorageTarget
from core.types import BundleDescriptor, StorageResult
from storage.primitive import StoragePrimitive, copy_tree


class BundleStorage:
    """Storage for bundles keyed by identifier, such as dSYMs and frameworks."""

    def __init__(
        self,
        target: StorageTarget,
        root: Path,
        replacement_token: str,
        logger: Any | None = None,
        kind: str = "bundle",
    ) -> None:
        self._primitive = StoragePrimitive(target, root, kind, replacement_token, logger)

    @property
    def root(self) -> Path:
        return self._primitive.root

    @property
    def replacement_mapping(self) -> dict[str, str]:
        return self._primitive.replacement_mapping

    def check_architecture(self, bundle: BundleDescriptor) -> StorageResult[None]:
        """Check that the bundle supports the target architecture."""
        return self._primitive.execute(
            lambda: ensure_architecture(self._primitive.target, bundle)
        )

    def save_bundle(self, bundle: BundleDescriptor) -> StorageResult[Path]:
        """Persist a bundle after checking its architectures.

        Args:
            bundle: Descriptor of the bundle to copy.

        Returns:
            Result with the persisted bundle path.
        """
        return self._primitive.execute(lambda: persist_bundle(self._primitive, bundle))

    def persisted_bundles(self) -> StorageResult[dict[str, BundleDescriptor]]:
        """Scan storage for persisted bundles keyed by identifier."""
        return self._primitive.execute(lambda: scan_persisted_bundles(self._primitive))

    def persisted_bundle_ids(self) -> StorageResult[frozenset[str]]:
        return self._primitive.execute(
            lambda: frozenset(scan_persisted_bundles(self._primitive))
        )

    def clean(self) -> StorageResult[int]:
        return self._primitive.execute(self._primitive.remove_all)

    def close(self) -> None:
        self._primitive.close()


def ensure_architecture(target: StorageTarget, bundle: BundleDescriptor) -> None:
    """Raise unless the target architecture is among the bundle's.

    Raises:
        ArchitectureMismatchError: If the bundle cannot run on the target.
    """
    if target.architecture not in bundle.architectures:
        raise ArchitectureMismatchError(
            bundle.name, frozenset({target.architecture}), bundle.architectures
        )


def persist_bundle(primitive: StoragePrimitive, bundle: BundleDescriptor) -> Path:
    """Copy a bundle into ``root/<identifier>`` once its architectures check out.

    Runs on the storage queue. The root is left untouched on failure.

    Returns:
        Path of the persisted bundle directory.
    """
    ensure_architecture(primitive.target, bundle)
    primitive.entry_path(bundle.identifier)
    with primitive.staging_path() as staged:
        copy_tree(bundle.path, staged / bundle.path.name)
        destination = primitive.commit(staged, bundle.identifier)
    persisted_path = destination / bundle.path.name
    primitive.logger.info(
        "bundle_saved",
        bundle_id=bundle.identifier,
        version=bundle.version,
        architectures=sorted(bundle.architectures),
        destination=str(persisted_path),
    )
    return persisted_path


def persisted_bundle_path(entry_dir: Path, suffix: str | None = None) -> Path:
    """Return the single bundle directory inside a persisted entry.

    Raises:
        StorageIOError: If the entry holds no bundle or several candidates.
    """
    try:
        candidates = sorted(
            child
            for child in entry_dir.iterdir()
            if child.is_dir() and (suffix is None or child.suffix == suffix)
        )
    except OSError as error:
        raise StorageIOError(f"Failed to enumerate persisted entry {entry_dir}: {error}.") from error
    if len(candidates) != 1:
        raise StorageIOError(
            f"Persisted entry {entry_dir} holds {len(candidates)} bundles; expected exactly one."
        )
    return candidates[0]


def scan_persisted_bundles(
    primitive: StoragePrimitive, suffix: str | None = None
) -> dict[str, BundleDescriptor]:
    """Read descriptors for every persisted bundle under the root.

    Entries that are not readable bundles are logged and skipped.

    Raises:
        StorageIOError: If the root itself cannot be enumerated.
    """
    bundles: dict[str, BundleDescriptor] = {}
    for entry_dir in primitive.entries():
        if not entry_dir.is_dir():
            continue
        try:
            descriptor = read_bundle_descriptor(persisted_bundle_path(entry_dir, suffix))
        except (BundleDescriptorError, StorageIOError) as error:
            primitive.logger.warning(
                "persisted_bundle_skipped", entry=entry_dir.name, error=str(error)
            )
            continue
        bundles[descriptor.identifier] = descriptor
    return bundles
