"""Unit tests for core config parsing."""

from __future__ import annotations

import os

import pytest

from core.config import TargetStoreConfig
from core.errors import TargetStoreConfigError


def test_from_env_reads_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve data root from environment."""
    monkeypatch.setenv("TARGETSTORE_DATA_ROOT", "./.tmp-targetstore")

    config = TargetStoreConfig.from_env()

    assert config.data_root.name == ".tmp-targetstore" and config.data_root.is_absolute()


def test_from_env_defaults_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fall back to the default data root when unset."""
    monkeypatch.delenv("TARGETSTORE_DATA_ROOT", raising=False)

    config = TargetStoreConfig.from_env()

    assert config.data_root.name == ".targetstore"


def test_from_env_raises_for_blank_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for a whitespace-only data root."""
    monkeypatch.setenv("TARGETSTORE_DATA_ROOT", "   ")

    with pytest.raises(TargetStoreConfigError):
        TargetStoreConfig.from_env()

    assert os.getenv("TARGETSTORE_DATA_ROOT") == "   "


def test_from_env_raises_when_data_root_is_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject a data root that points at a regular file."""
    file_path = tmp_path / "not-a-dir"
    file_path.write_text("x", encoding="utf-8")
    monkeypatch.setenv("TARGETSTORE_DATA_ROOT", str(file_path))

    with pytest.raises(TargetStoreConfigError):
        TargetStoreConfig.from_env()

    assert file_path.is_file()
