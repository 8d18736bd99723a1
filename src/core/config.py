"""Runtime configuration model for targetstore.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import DATA_ROOT_ENV_VAR, DEFAULT_DATA_ROOT
from core.errors import TargetStoreConfigError


@dataclass(frozen=True)
class TargetStoreConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory holding one subtree per target.
    """

    data_root: Path

    @classmethod
    def from_env(cls) -> "TargetStoreConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            TargetStoreConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv(DATA_ROOT_ENV_VAR, str(DEFAULT_DATA_ROOT))
        return cls(data_root=_parse_data_root(data_root_value))


def _parse_data_root(raw_value: str) -> Path:
    """Parse the data-root environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Absolute data-root path.

    Raises:
        TargetStoreConfigError: If value is blank or points at a file.
    """
    if not raw_value.strip():
        raise TargetStoreConfigError(
            f"Invalid {DATA_ROOT_ENV_VAR} value: expected a directory path, got an empty string. "
            f"Unset {DATA_ROOT_ENV_VAR} or point it at a writable directory."
        )
    data_root = Path(raw_value).expanduser().resolve()
    if data_root.exists() and not data_root.is_dir():
        raise TargetStoreConfigError(
            f"Invalid {DATA_ROOT_ENV_VAR} value: {data_root} exists and is not a directory. "
            f"Point {DATA_ROOT_ENV_VAR} at a directory."
        )
    return data_root
