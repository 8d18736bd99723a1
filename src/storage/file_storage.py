"""Flat file storage.

Files are addressed purely by the path returned from ``save_file``;
there is no identity tracking beyond the file's base name.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from core.errors import StorageIOError
from core.target import StorageTarget
from core.types import StorageResult
from storage.primitive import StoragePrimitive


class FileStorage:
    """Storage relocating individual files, such as dylibs, into one directory."""

    def __init__(
        self,
        target: StorageTarget,
        root: Path,
        replacement_token: str,
        logger: Any | None = None,
        kind: str = "file",
    ) -> None:
        self._primitive = StoragePrimitive(target, root, kind, replacement_token, logger)

    @property
    def root(self) -> Path:
        return self._primitive.root

    @property
    def replacement_mapping(self) -> dict[str, str]:
        return self._primitive.replacement_mapping

    def save_file(self, source: Path) -> StorageResult[Path]:
        """Copy a file into storage under its base name.

        A previously saved file with the same name is overwritten.

        Args:
            source: File to relocate.

        Returns:
            Result with the stored file path.
        """
        return self._primitive.execute(lambda: self._save_file(Path(source)))

    def list_files(self) -> StorageResult[tuple[Path, ...]]:
        """List stored files sorted by name."""
        return self._primitive.execute(lambda: tuple(self._primitive.entries()))

    def clean(self) -> StorageResult[int]:
        """Remove every stored file.

        Returns:
            Result with the number of removed entries.
        """
        return self._primitive.execute(self._primitive.remove_all)

    def close(self) -> None:
        self._primitive.close()

    def _save_file(self, source: Path) -> Path:
        if not source.is_file():
            raise StorageIOError(
                f"Cannot save {source}: not a readable file. Check the upload path."
            )
        with self._primitive.staging_path() as staged:
            try:
                shutil.copy2(source, staged)
            except OSError as error:
                raise StorageIOError(
                    f"Failed to copy {source} into {self._primitive.kind} storage: {error}."
                ) from error
            destination = self._primitive.commit(staged, source.name)
        self._primitive.logger.info(
            "file_saved", source=str(source), destination=str(destination)
        )
        return destination
