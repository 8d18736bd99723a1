"""Public SDK surface for targetstore.

This module provides a stable import path for callers staging artifacts.
It re-exports the storage manager, typed models, and error types.
"""

from __future__ import annotations

from bundles.descriptor import read_bundle_descriptor
from core.config import TargetStoreConfig
from core.errors import (
    ArchitectureMismatchError,
    BundleDescriptorError,
    NotFoundError,
    StorageInitializationError,
    StorageIOError,
    TargetStoreError,
    UnresolvableInputError,
)
from core.staging_plan import load_staging_plan
from core.target import LocalTarget, StorageTarget
from core.types import (
    BundleDescriptor,
    StorageResult,
    TestDescriptor,
    TestRunDescriptor,
    XCTestBundleDescriptor,
)
from storage.manager import StorageManager
from storage.staging import execute_staging_plan

__all__ = [
    "ArchitectureMismatchError",
    "BundleDescriptor",
    "BundleDescriptorError",
    "LocalTarget",
    "NotFoundError",
    "StorageIOError",
    "StorageInitializationError",
    "StorageManager",
    "StorageResult",
    "StorageTarget",
    "TargetStoreConfig",
    "TargetStoreError",
    "TestDescriptor",
    "TestRunDescriptor",
    "UnresolvableInputError",
    "XCTestBundleDescriptor",
    "execute_staging_plan",
    "load_staging_plan",
    "read_bundle_descriptor",
]
