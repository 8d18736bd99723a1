"""Test bundle and xctestrun storage.

This module ingests loose ``.xctest`` bundles and ``.xctestrun`` manifests
and keeps an index of test descriptors keyed by bundle identifier.

Persisted manifests are self-contained: every artifact they reference is
copied next to them and the manifest is rewritten to use only
``__TESTROOT__``-relative paths, so the index can be rebuilt from a
directory scan without cross-entry lookups.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Mapping

from bundles.descriptor import read_bundle_descriptor
from bundles.xctestrun import XCTestRunEntry, read_xctestrun, write_xctestrun
from core.constants import TESTHOST_TOKEN, TESTROOT_TOKEN, XCTEST_EXTENSION, XCTESTRUN_EXTENSION
from core.errors import (
    NotFoundError,
    StorageIOError,
    TargetStoreError,
    UnresolvableInputError,
)
from core.target import StorageTarget
from core.types import (
    BundleDescriptor,
    StorageResult,
    TestDescriptor,
    TestRunDescriptor,
    TestRunTarget,
    XCTestBundleDescriptor,
)
from storage.bundle_storage import ensure_architecture, persist_bundle, persisted_bundle_path
from storage.primitive import StoragePrimitive, copy_tree


@dataclass(frozen=True)
class _ResolvedEntry:
    entry: XCTestRunEntry
    bundle: BundleDescriptor
    test_host_path: Path | None
    ui_target_app_path: Path | None


class XCTestBundleStorage:
    """Storage for xctest bundles and xctestrun manifests."""

    def __init__(
        self,
        target: StorageTarget,
        root: Path,
        replacement_token: str,
        logger: Any | None = None,
    ) -> None:
        self._primitive = StoragePrimitive(target, root, "xctest", replacement_token, logger)
        self._index: dict[str, TestDescriptor] | None = None
        self._primitive.execute(self._refresh_index)

    @property
    def root(self) -> Path:
        return self._primitive.root

    @property
    def replacement_mapping(self) -> dict[str, str]:
        return self._primitive.replacement_mapping

    def check_architecture(self, bundle: BundleDescriptor) -> StorageResult[None]:
        return self._primitive.execute(
            lambda: ensure_architecture(self._primitive.target, bundle)
        )

    def save_bundle(self, bundle: BundleDescriptor) -> StorageResult[Path]:
        """Persist an xctest bundle descriptor and refresh the index."""

        def save() -> Path:
            if bundle.path.suffix != XCTEST_EXTENSION:
                raise UnresolvableInputError(
                    f"Bundle {bundle.path} is not an {XCTEST_EXTENSION} bundle. "
                    "Save other bundle kinds into their own storage."
                )
            persisted_path = persist_bundle(self._primitive, bundle)
            self._refresh_index()
            return persisted_path

        return self._primitive.execute(save)

    def save_bundle_or_test_run_from_base_directory(self, directory: Path) -> StorageResult[str]:
        """Store the test bundle or xctestrun found in a containing directory.

        Useful when the upload was extracted from an archive. A manifest
        takes precedence over loose bundles in the same directory.

        Args:
            directory: Directory whose top-level entries are inspected.

        Returns:
            Result with the bundle id of the stored test.
        """
        return self._primitive.execute(lambda: self._save_from_directory(Path(directory)))

    def save_bundle_or_test_run(self, file_path: Path) -> StorageResult[str]:
        """Store a test bundle or xctestrun given its own path.

        Args:
            file_path: Path of a ``.xctest`` bundle or ``.xctestrun`` file.

        Returns:
            Result with the bundle id of the stored test.
        """
        return self._primitive.execute(lambda: self._save_from_path(Path(file_path)))

    def list_test_descriptors(self) -> StorageResult[tuple[TestDescriptor, ...]]:
        """Return descriptors of every installed test, sorted by bundle id.

        Fails rather than returning a subset when the index cannot be
        rebuilt completely.
        """
        return self._primitive.execute(
            lambda: tuple(
                sorted(self._current_index().values(), key=lambda item: item.bundle_id)
            )
        )

    def test_descriptor_with_id(self, bundle_id: str) -> StorageResult[TestDescriptor]:
        """Return the indexed descriptor for a bundle id."""

        def lookup() -> TestDescriptor:
            index = self._current_index()
            if bundle_id not in index:
                raise NotFoundError(
                    f"No installed test with bundle id '{bundle_id}'. "
                    f"Installed: {sorted(index)}."
                )
            return index[bundle_id]

        return self._primitive.execute(lookup)

    def clean(self) -> StorageResult[int]:
        def clean_and_rebuild() -> int:
            removed = self._primitive.remove_all()
            self._refresh_index()
            return removed

        return self._primitive.execute(clean_and_rebuild)

    def close(self) -> None:
        self._primitive.close()

    def _save_from_directory(self, directory: Path) -> str:
        try:
            children = sorted(directory.iterdir())
        except OSError as error:
            raise StorageIOError(f"Failed to enumerate {directory}: {error}.") from error
        manifests = [child for child in children if child.suffix == XCTESTRUN_EXTENSION]
        bundles = [child for child in children if child.suffix == XCTEST_EXTENSION]
        if len(manifests) > 1:
            raise UnresolvableInputError(
                f"Directory {directory} holds several xctestrun files "
                f"{[path.name for path in manifests]}. Provide exactly one."
            )
        if manifests:
            if bundles:
                self._primitive.logger.info(
                    "xctestrun_preferred_over_bundles",
                    manifest=manifests[0].name,
                    bundles=[path.name for path in bundles],
                )
            return self._save_test_run(manifests[0])
        if len(bundles) > 1:
            raise UnresolvableInputError(
                f"Directory {directory} holds several xctest bundles "
                f"{[path.name for path in bundles]} and no xctestrun. Provide exactly one."
            )
        if not bundles:
            raise UnresolvableInputError(
                f"Neither a {XCTEST_EXTENSION} bundle nor a {XCTESTRUN_EXTENSION} file "
                f"was found in {directory}."
            )
        return self._save_test_bundle(bundles[0])

    def _save_from_path(self, file_path: Path) -> str:
        if file_path.suffix == XCTESTRUN_EXTENSION:
            return self._save_test_run(file_path)
        if file_path.suffix == XCTEST_EXTENSION:
            return self._save_test_bundle(file_path)
        raise UnresolvableInputError(
            f"Cannot store {file_path}: expected a {XCTEST_EXTENSION} bundle "
            f"or a {XCTESTRUN_EXTENSION} file."
        )

    def _save_test_bundle(self, bundle_path: Path) -> str:
        bundle = read_bundle_descriptor(bundle_path)
        persist_bundle(self._primitive, bundle)
        self._refresh_index()
        return bundle.identifier

    def _save_test_run(self, manifest_path: Path) -> str:
        manifest = read_xctestrun(manifest_path)
        test_root = manifest_path.parent
        installed = self._installed_bundles()
        resolved = [
            _resolve_entry(entry, test_root, installed) for entry in manifest.entries
        ]
        for item in resolved:
            ensure_architecture(self._primitive.target, item.bundle)
        primary_id = resolved[0].bundle.identifier
        self._primitive.entry_path(primary_id)
        with self._primitive.staging_path() as staged:
            staged.mkdir()
            relocator = _ArtifactRelocator(test_root, staged)
            relocator.copy_all(resolved)
            updates = {item.entry.location: relocator.relocate(item) for item in resolved}
            write_xctestrun(manifest, staged / manifest_path.name, updates)
            destination = self._primitive.commit(staged, primary_id)
        self._primitive.logger.info(
            "test_run_saved",
            bundle_id=primary_id,
            manifest=manifest_path.name,
            targets=[item.entry.name for item in resolved],
            destination=str(destination),
        )
        self._refresh_index()
        return primary_id

    def _installed_bundles(self) -> dict[str, BundleDescriptor]:
        installed: dict[str, BundleDescriptor] = {}
        for descriptor in self._current_index().values():
            if isinstance(descriptor, XCTestBundleDescriptor):
                installed[descriptor.bundle_id] = descriptor.bundle
            else:
                for target in descriptor.targets:
                    installed.setdefault(target.bundle.identifier, target.bundle)
        return installed

    def _current_index(self) -> dict[str, TestDescriptor]:
        if self._index is None:
            self._index = self._scan_index()
        return self._index

    def _refresh_index(self) -> None:
        try:
            self._index = self._scan_index()
        except TargetStoreError as error:
            self._index = None
            self._primitive.logger.warning("test_index_rebuild_failed", error=str(error))

    def _scan_index(self) -> dict[str, TestDescriptor]:
        index: dict[str, TestDescriptor] = {}
        for entry_dir in self._primitive.entries():
            if not entry_dir.is_dir():
                continue
            descriptor = self._read_persisted_entry(entry_dir)
            index[descriptor.bundle_id] = descriptor
        self._primitive.logger.debug("test_index_rebuilt", bundle_ids=sorted(index))
        return index

    def _read_persisted_entry(self, entry_dir: Path) -> TestDescriptor:
        try:
            manifests = sorted(entry_dir.glob(f"*{XCTESTRUN_EXTENSION}"))
        except OSError as error:
            raise StorageIOError(f"Failed to enumerate persisted entry {entry_dir}: {error}.") from error
        if not manifests:
            bundle_path = persisted_bundle_path(entry_dir, XCTEST_EXTENSION)
            return XCTestBundleDescriptor(bundle=read_bundle_descriptor(bundle_path))
        if len(manifests) > 1:
            raise StorageIOError(
                f"Persisted entry {entry_dir} holds {len(manifests)} xctestrun files."
            )
        manifest = read_xctestrun(manifests[0])
        targets = tuple(
            _run_target(_resolve_entry(entry, entry_dir, {})) for entry in manifest.entries
        )
        return TestRunDescriptor(
            bundle_id=targets[0].bundle.identifier,
            manifest_path=manifests[0],
            targets=targets,
        )


class _ArtifactRelocator:
    """Copies a manifest's referenced artifacts into a staging directory.

    Only the outermost referenced trees are copied; a reference inside one
    of them is expressed relative to that copy.
    """

    def __init__(self, test_root: Path, staged: Path) -> None:
        self._test_root = test_root
        self._staged = staged
        self._copied: dict[Path, PurePosixPath] = {}

    def copy_all(self, items: list[_ResolvedEntry]) -> None:
        sources: list[Path] = []
        for item in items:
            for path in _referenced_paths(item):
                resolved_source = path.resolve()
                if resolved_source not in sources:
                    sources.append(resolved_source)
        for source in sources:
            if any(other != source and source.is_relative_to(other) for other in sources):
                continue
            relative = self._relative_destination(source)
            copy_tree(source, self._staged / relative)
            self._copied[source] = relative

    def relocate(self, item: _ResolvedEntry) -> dict[str, str]:
        updates: dict[str, str] = {}
        if item.test_host_path is not None:
            updates["TestHostPath"] = self._relocated(item.test_host_path)
        updates["TestBundlePath"] = self._relocated(item.bundle.path)
        if item.ui_target_app_path is not None:
            updates["UITargetAppPath"] = self._relocated(item.ui_target_app_path)
        return updates

    def _relocated(self, source: Path) -> str:
        resolved_source = source.resolve()
        for copied_source, copied_relative in self._copied.items():
            if resolved_source.is_relative_to(copied_source):
                nested = copied_relative / resolved_source.relative_to(copied_source).as_posix()
                return f"{TESTROOT_TOKEN}/{nested}"
        raise StorageIOError(f"Referenced artifact {source} was not copied into storage.")

    def _relative_destination(self, source: Path) -> PurePosixPath:
        test_root = self._test_root.resolve()
        if source.is_relative_to(test_root):
            return PurePosixPath(source.relative_to(test_root).as_posix())
        relative = PurePosixPath(source.name)
        if (self._staged / relative).exists():
            relative = PurePosixPath(f"{len(self._copied)}-{source.name}")
        return relative


def _referenced_paths(item: _ResolvedEntry) -> list[Path]:
    paths = [item.bundle.path]
    if item.test_host_path is not None:
        paths.append(item.test_host_path)
    if item.ui_target_app_path is not None:
        paths.append(item.ui_target_app_path)
    return paths


def _resolve_entry(
    entry: XCTestRunEntry,
    test_root: Path,
    installed: Mapping[str, BundleDescriptor],
) -> _ResolvedEntry:
    test_host_path = None
    if entry.test_host_path:
        test_host_path = _expand_path(entry.test_host_path, test_root, None)
        if not test_host_path.is_dir():
            raise UnresolvableInputError(
                f"Test host {entry.test_host_path} of target '{entry.name}' "
                f"was not found at {test_host_path}."
            )
    if entry.test_bundle_path.startswith(TESTHOST_TOKEN) and test_host_path is None:
        raise UnresolvableInputError(
            f"Target '{entry.name}' places its bundle in {TESTHOST_TOKEN} but declares no TestHostPath."
        )
    bundle_path = _expand_path(entry.test_bundle_path, test_root, test_host_path)
    if bundle_path.is_dir():
        bundle = read_bundle_descriptor(bundle_path)
    else:
        bundle = _installed_bundle(entry, installed)
    ui_target_app_path = None
    if entry.ui_target_app_path:
        ui_target_app_path = _expand_path(entry.ui_target_app_path, test_root, test_host_path)
        if not ui_target_app_path.is_dir():
            raise UnresolvableInputError(
                f"UI target app {entry.ui_target_app_path} of target '{entry.name}' "
                f"was not found at {ui_target_app_path}."
            )
    return _ResolvedEntry(
        entry=entry,
        bundle=bundle,
        test_host_path=test_host_path,
        ui_target_app_path=ui_target_app_path,
    )


def _installed_bundle(
    entry: XCTestRunEntry, installed: Mapping[str, BundleDescriptor]
) -> BundleDescriptor:
    if entry.test_bundle_identifier:
        bundle = installed.get(entry.test_bundle_identifier)
    else:
        bundle_name = PurePosixPath(entry.test_bundle_path).name
        matches = [item for item in installed.values() if item.path.name == bundle_name]
        bundle = matches[0] if len(matches) == 1 else None
    if bundle is None:
        reference = entry.test_bundle_identifier or entry.test_bundle_path
        raise UnresolvableInputError(
            f"Test bundle {reference} of target '{entry.name}' is neither next to the "
            "xctestrun nor installed. Upload the bundle together with the manifest."
        )
    return bundle


def _expand_path(raw_path: str, test_root: Path, test_host: Path | None) -> Path:
    for token, base in ((TESTHOST_TOKEN, test_host), (TESTROOT_TOKEN, test_root)):
        if raw_path.startswith(token) and base is not None:
            return base / raw_path[len(token) :].lstrip("/")
    path = Path(raw_path)
    return path if path.is_absolute() else test_root / path


def _run_target(item: _ResolvedEntry) -> TestRunTarget:
    entry = item.entry
    return TestRunTarget(
        name=entry.name,
        bundle=item.bundle,
        test_host_path=item.test_host_path,
        ui_target_app_path=item.ui_target_app_path,
        environment=entry.environment,
        testing_environment=entry.testing_environment,
        arguments=entry.arguments,
        only_tests=entry.only_tests,
        skip_tests=entry.skip_tests,
    )
