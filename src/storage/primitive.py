"""Shared storage primitive.

Every storage kind composes one ``StoragePrimitive``: a root directory it
exclusively owns, a logger bound to the storage kind and target, and a
single-worker queue that totally orders all operations on that root.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar
from uuid import uuid4

from core.constants import STAGING_PREFIX
from core.errors import StorageInitializationError, StorageIOError, TargetStoreError
from core.logging_config import get_logger
from core.target import StorageTarget
from core.types import StorageResult

T = TypeVar("T")


class StoragePrimitive:
    """Root directory plus serialized execution queue for one storage."""

    def __init__(
        self,
        target: StorageTarget,
        root: Path,
        kind: str,
        replacement_token: str,
        logger: Any | None = None,
    ) -> None:
        """Create the root directory and start the storage queue.

        Args:
            target: Target the artifacts are staged against.
            root: Directory exclusively owned by this storage.
            kind: Storage kind name used in logs and thread names.
            replacement_token: Environment placeholder for the root path.
            logger: Optional logger; a bound structlog logger by default.

        Raises:
            StorageInitializationError: If the root cannot be created.
        """
        self.target = target
        self.root = root
        self.kind = kind
        self.replacement_token = replacement_token
        base_logger = logger if logger is not None else get_logger(__name__)
        self.logger = base_logger.bind(storage=kind, udid=target.udid)
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise StorageInitializationError(
                f"Failed to create {kind} storage at {root}: {error}. "
                "Check that the data root is writable."
            ) from error
        if not root.is_dir():
            raise StorageInitializationError(
                f"{kind} storage root {root} is not a directory. Remove the file and retry."
            )
        try:
            self._sweep_staging_entries()
        except (OSError, StorageIOError) as error:
            raise StorageInitializationError(
                f"Failed to clear stale staging entries in {root}: {error}."
            ) from error
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"targetstore-{kind}"
        )

    @property
    def replacement_mapping(self) -> dict[str, str]:
        """Placeholder token mapped onto this storage's root path."""
        return {self.replacement_token: str(self.root)}

    def execute(self, task: Callable[[], T]) -> StorageResult[T]:
        """Run a task on the storage queue and wait for its outcome.

        Tasks run one at a time in submission order. A task must not call
        ``execute`` on the same primitive.

        Args:
            task: Zero-argument callable performing the operation.

        Returns:
            Result carrying the task value or the captured storage error.
        """
        try:
            future = self._executor.submit(self._run_captured, task)
        except RuntimeError as error:
            return StorageResult.failure(
                StorageIOError(f"{self.kind} storage at {self.root} is closed: {error}.")
            )
        return future.result()

    def close(self) -> None:
        """Stop the storage queue after pending tasks finish."""
        self._executor.shutdown(wait=True)

    def entry_path(self, name: str) -> Path:
        """Return the root child path for an entry name.

        Raises:
            StorageIOError: If the name cannot be used as a directory entry.
        """
        if not name or name.startswith(".") or "/" in name:
            raise StorageIOError(
                f"Cannot store '{name}' in {self.kind} storage: not a valid entry name."
            )
        return self.root / name

    def entries(self) -> list[Path]:
        """List visible root entries sorted by name.

        Raises:
            StorageIOError: If the root cannot be enumerated.
        """
        try:
            children = list(self.root.iterdir())
        except OSError as error:
            raise StorageIOError(
                f"Failed to enumerate {self.kind} storage at {self.root}: {error}."
            ) from error
        return sorted(
            (child for child in children if not child.name.startswith(".")),
            key=lambda child: child.name,
        )

    @contextmanager
    def staging_path(self) -> Iterator[Path]:
        """Yield a fresh hidden path under the root, removed unless committed."""
        path = self.root / f"{STAGING_PREFIX}{uuid4().hex}"
        try:
            yield path
        finally:
            if path.exists() or path.is_symlink():
                remove_path(path)

    def commit(self, staged: Path, name: str) -> Path:
        """Atomically swap a staged file or directory into ``root/name``.

        A previous entry with the same name is superseded. If the swap
        fails the previous entry is restored.

        Returns:
            Final entry path.

        Raises:
            StorageIOError: If the swap fails.
        """
        destination = self.entry_path(name)
        superseded = None
        try:
            if destination.exists() or destination.is_symlink():
                superseded = self.root / f"{STAGING_PREFIX}{uuid4().hex}-superseded"
                os.rename(destination, superseded)
            os.rename(staged, destination)
        except OSError as error:
            if superseded is not None and not destination.exists():
                os.rename(superseded, destination)
            raise StorageIOError(
                f"Failed to move {staged.name} into place at {destination}: {error}."
            ) from error
        if superseded is not None:
            remove_path(superseded)
        return destination

    def remove_all(self) -> int:
        """Remove every root entry, staging leftovers included.

        Returns:
            Number of removed entries.
        """
        try:
            children = list(self.root.iterdir())
        except OSError as error:
            raise StorageIOError(
                f"Failed to enumerate {self.kind} storage at {self.root}: {error}."
            ) from error
        for child in children:
            remove_path(child)
        return len(children)

    def _run_captured(self, task: Callable[[], T]) -> StorageResult[T]:
        try:
            return StorageResult.success(task())
        except TargetStoreError as error:
            self.logger.warning(
                "storage_operation_failed",
                error_type=type(error).__name__,
                error=str(error),
            )
            return StorageResult.failure(error)
        except OSError as error:
            wrapped = StorageIOError(
                f"{self.kind} storage operation failed at {self.root}: {error}."
            )
            wrapped.__cause__ = error
            self.logger.warning("storage_operation_failed", error_type="OSError", error=str(error))
            return StorageResult.failure(wrapped)

    def _sweep_staging_entries(self) -> None:
        for child in self.root.iterdir():
            if child.name.startswith(STAGING_PREFIX):
                self.logger.info("stale_staging_removed", path=str(child))
                remove_path(child)


def remove_path(path: Path) -> None:
    """Remove a file, symlink, or directory tree.

    Raises:
        StorageIOError: If removal fails.
    """
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as error:
        raise StorageIOError(f"Failed to remove {path}: {error}.") from error


def copy_tree(source: Path, destination: Path) -> None:
    """Copy a bundle directory, preserving symlinks.

    Raises:
        StorageIOError: If the source is missing or the copy fails.
    """
    if not source.is_dir():
        raise StorageIOError(f"Bundle source {source} is not a readable directory.")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, destination, symlinks=True)
    except OSError as error:
        raise StorageIOError(f"Failed to copy {source} to {destination}: {error}.") from error
