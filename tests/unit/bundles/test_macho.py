"""Unit tests for Mach-O architecture reading."""

from __future__ import annotations

import struct

import pytest

from bundles.macho import architecture_name, read_architectures
from core.errors import BundleDescriptorError
from tests.bundle_factory import fat_macho, thin_macho


def test_read_architectures_thin_binary(tmp_path) -> None:
    """Thin binaries should report their single architecture."""
    binary_path = tmp_path / "Thin"
    binary_path.write_bytes(thin_macho("x86_64"))

    assert read_architectures(binary_path) == frozenset({"x86_64"})


def test_read_architectures_fat_binary(tmp_path) -> None:
    """Universal binaries should report every slice."""
    binary_path = tmp_path / "Fat"
    binary_path.write_bytes(fat_macho(["arm64", "x86_64"]))

    assert read_architectures(binary_path) == frozenset({"arm64", "x86_64"})


def test_read_architectures_big_endian_thin_binary(tmp_path) -> None:
    """Big-endian headers should be decoded with their own byte order."""
    binary_path = tmp_path / "BigEndian"
    binary_path.write_bytes(struct.pack(">Iii", 0xFEEDFACE, 12, 9) + b"\0" * 16)

    assert read_architectures(binary_path) == frozenset({"armv7"})


def test_read_architectures_rejects_non_macho(tmp_path) -> None:
    """Scripts and other files should not pass as binaries."""
    binary_path = tmp_path / "script.sh"
    binary_path.write_bytes(b"#!/bin/sh\necho hello\n")

    with pytest.raises(BundleDescriptorError):
        read_architectures(binary_path)

    assert binary_path.exists()


def test_read_architectures_rejects_truncated_fat_table(tmp_path) -> None:
    """A fat header promising more slices than present should fail."""
    binary_path = tmp_path / "Truncated"
    binary_path.write_bytes(struct.pack(">II", 0xCAFEBABE, 3) + b"\0" * 20)

    with pytest.raises(BundleDescriptorError):
        read_architectures(binary_path)

    assert True


def test_architecture_name_ignores_capability_bits() -> None:
    """arm64e slices carry pointer-auth capability bits in the subtype."""
    signed_subtype = struct.unpack(">i", bytes.fromhex("80000002"))[0]

    assert architecture_name(0x0100000C, signed_subtype) == "arm64e"
