"""Automation target boundary.

Storages only need a stable udid for directory naming and the target's
architecture for bundle compatibility checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class StorageTarget(Protocol):
    """Device or simulator that artifacts are staged against."""

    @property
    def udid(self) -> str: ...

    @property
    def architecture(self) -> str: ...


@dataclass(frozen=True)
class LocalTarget:
    """Plain target description used by the CLI, staging plans, and tests."""

    udid: str
    architecture: str
