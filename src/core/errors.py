"""Targetstore exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each storage failure kind maps onto one error type so callers can
translate it into their own protocol-level responses.
"""

from __future__ import annotations

from typing import AbstractSet


class TargetStoreError(Exception):
    """Base exception for all targetstore failures."""


class TargetStoreConfigError(TargetStoreError):
    """Raised for invalid runtime configuration."""


class StorageIOError(TargetStoreError):
    """Raised when creating, copying, moving, or scanning storage fails."""


class StorageInitializationError(TargetStoreError):
    """Raised when a storage or manager cannot establish its root directory."""


class NotFoundError(TargetStoreError):
    """Raised when a lookup by identifier has no match."""


class UnresolvableInputError(TargetStoreError):
    """Raised for ambiguous inputs or references that cannot be located."""


class BundleDescriptorError(TargetStoreError):
    """Raised when a bundle on disk is malformed or missing metadata."""


class StagingPlanError(TargetStoreError):
    """Raised for invalid or unsupported staging-plan files."""


class ArchitectureMismatchError(TargetStoreError):
    """Raised when a bundle does not support the target architecture.

    Attributes:
        target_architectures: Architectures offered by the target.
        bundle_architectures: Architectures declared by the bundle binary.
    """

    def __init__(
        self,
        bundle_name: str,
        target_architectures: AbstractSet[str],
        bundle_architectures: AbstractSet[str],
    ) -> None:
        self.target_architectures = frozenset(target_architectures)
        self.bundle_architectures = frozenset(bundle_architectures)
        super().__init__(
            f"Target architectures {sorted(self.target_architectures)} are not in the "
            f"supported architectures {sorted(self.bundle_architectures)} of {bundle_name}. "
            "Rebuild the bundle for the target architecture."
        )
