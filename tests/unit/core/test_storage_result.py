"""Unit tests for the storage result type."""

from __future__ import annotations

import pytest

from core.errors import NotFoundError
from core.types import StorageResult


def test_success_result_unwraps_value() -> None:
    """Successful results should expose their value."""
    result = StorageResult.success("com.example.app")

    assert result.ok and result.unwrap() == "com.example.app"


def test_failure_result_raises_captured_error() -> None:
    """Failed results should re-raise the captured error on unwrap."""
    error = NotFoundError("missing")
    result: StorageResult[str] = StorageResult.failure(error)

    with pytest.raises(NotFoundError) as raised:
        result.unwrap()

    assert not result.ok and raised.value is error
