"""Shared typed models.

This module defines immutable data models used by the bundle parsers,
storages, manager, and CLI layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, Literal, Mapping, TypeVar, Union

from core.errors import TargetStoreError

T = TypeVar("T")

ArtifactKind = Literal["xctest", "application", "dylib", "dsym", "framework"]
SUPPORTED_ARTIFACT_KINDS: tuple[ArtifactKind, ...] = (
    "xctest",
    "application",
    "dylib",
    "dsym",
    "framework",
)


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """Outcome of one public storage operation.

    Exactly one of ``value`` or ``error`` is meaningful; ``ok`` tells which.

    Attributes:
        value: Success payload, ``None`` for operations without one.
        error: Failure raised by the operation, if any.
    """

    value: T | None = None
    error: TargetStoreError | None = None

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.error is None

    def unwrap(self) -> T:
        """Return the success value or raise the captured error.

        Raises:
            TargetStoreError: The error captured by the operation.
        """
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> "StorageResult[T]":
        """Build a successful result."""
        return cls(value=value)

    @classmethod
    def failure(cls, error: TargetStoreError) -> "StorageResult[T]":
        """Build a failed result."""
        return cls(error=error)


@dataclass(frozen=True)
class BundleDescriptor:
    """Metadata of one bundle directory on disk.

    Attributes:
        identifier: CFBundleIdentifier, used as the storage key.
        name: Display name, defaulting to the bundle directory stem.
        version: Short version string or build version when declared.
        path: Bundle root directory.
        binary_path: Executable or DWARF file the architectures were read from.
        architectures: Non-empty set of supported architecture names.
    """

    identifier: str
    name: str
    version: str | None
    path: Path
    binary_path: Path
    architectures: frozenset[str]


@dataclass(frozen=True)
class XCTestBundleDescriptor:
    """A loose xctest bundle persisted in test storage."""

    bundle: BundleDescriptor

    @property
    def bundle_id(self) -> str:
        return self.bundle.identifier

    @property
    def name(self) -> str:
        return self.bundle.name

    @property
    def path(self) -> Path:
        return self.bundle.path


@dataclass(frozen=True)
class TestRunTarget:
    """One test target entry of a resolved xctestrun manifest.

    Attributes:
        name: Target key or BlueprintName from the manifest.
        bundle: Descriptor of the resolved test bundle.
        test_host_path: Resolved test host application, if any.
        ui_target_app_path: Resolved UI target application, if any.
        environment: EnvironmentVariables entry.
        testing_environment: TestingEnvironmentVariables entry.
        arguments: CommandLineArguments entry.
        only_tests: OnlyTestIdentifiers entry.
        skip_tests: SkipTestIdentifiers entry.
    """

    __test__ = False

    name: str
    bundle: BundleDescriptor
    test_host_path: Path | None = None
    ui_target_app_path: Path | None = None
    environment: Mapping[str, str] = field(default_factory=dict)
    testing_environment: Mapping[str, str] = field(default_factory=dict)
    arguments: tuple[str, ...] = ()
    only_tests: tuple[str, ...] = ()
    skip_tests: tuple[str, ...] = ()


@dataclass(frozen=True)
class TestRunDescriptor:
    """A persisted xctestrun manifest and its resolved test targets."""

    __test__ = False

    bundle_id: str
    manifest_path: Path
    targets: tuple[TestRunTarget, ...]

    @property
    def name(self) -> str:
        return self.manifest_path.stem

    @property
    def path(self) -> Path:
        return self.manifest_path


TestDescriptor = Union[XCTestBundleDescriptor, TestRunDescriptor]


@dataclass(frozen=True)
class StagedArtifact:
    """Outcome of persisting one staging-plan artifact.

    Attributes:
        kind: Artifact kind the artifact was saved as.
        source_path: Path listed in the staging plan.
        stored_as: Returned bundle id or stored path on success.
        error_message: Failure description when the save failed.
    """

    kind: ArtifactKind
    source_path: Path
    stored_as: str | None = None
    error_message: str | None = None
