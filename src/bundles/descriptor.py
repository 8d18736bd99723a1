"""Bundle descriptor parsing.

This module reads a bundle's Info.plist and executable headers into a
typed descriptor. Storages key persisted bundles by the identifier it
returns and gate saves on its architecture set.
"""

from __future__ import annotations

import plistlib
from pathlib import Path
from typing import Any, Mapping
from xml.parsers.expat import ExpatError

from bundles.macho import read_architectures
from core.constants import DWARF_DIR, EXECUTABLE_LOCATIONS, INFO_PLIST_LOCATIONS
from core.errors import BundleDescriptorError
from core.types import BundleDescriptor


def read_bundle_descriptor(bundle_path: Path) -> BundleDescriptor:
    """Read the descriptor of a bundle directory.

    Args:
        bundle_path: Bundle root, e.g. ``Foo.app`` or ``FooTests.xctest``.

    Returns:
        Descriptor with identifier, version, and architectures.

    Raises:
        BundleDescriptorError: If the bundle is malformed.
    """
    if not bundle_path.is_dir():
        raise BundleDescriptorError(
            f"Bundle path {bundle_path} is not a directory. Provide an extracted bundle."
        )
    info = read_info_plist(bundle_path)
    identifier = info.get("CFBundleIdentifier")
    if not isinstance(identifier, str) or not identifier:
        raise BundleDescriptorError(
            f"Bundle {bundle_path} has no CFBundleIdentifier. Set it in Info.plist and rebuild."
        )
    binaries = _locate_binaries(bundle_path, info)
    architectures: set[str] = set()
    for binary_path in binaries:
        architectures.update(read_architectures(binary_path))
    if not architectures:
        raise BundleDescriptorError(
            f"Bundle {bundle_path} declares no architectures. Rebuild the bundle binary."
        )
    return BundleDescriptor(
        identifier=identifier,
        name=_string_field(info, "CFBundleName") or bundle_path.stem,
        version=_string_field(info, "CFBundleShortVersionString")
        or _string_field(info, "CFBundleVersion"),
        path=bundle_path,
        binary_path=binaries[0],
        architectures=frozenset(architectures),
    )


def read_info_plist(bundle_path: Path) -> Mapping[str, Any]:
    """Load the first Info.plist found inside a bundle.

    Raises:
        BundleDescriptorError: If no plist exists or it cannot be parsed.
    """
    for relative_path in INFO_PLIST_LOCATIONS:
        plist_path = bundle_path / relative_path
        if plist_path.is_file():
            return _load_plist_mapping(plist_path)
    raise BundleDescriptorError(
        f"No Info.plist found in bundle {bundle_path}. Provide a complete bundle directory."
    )


def _load_plist_mapping(plist_path: Path) -> Mapping[str, Any]:
    try:
        with plist_path.open("rb") as handle:
            payload = plistlib.load(handle)
    except OSError as error:
        raise BundleDescriptorError(
            f"Failed to read {plist_path}: {error}. Check file permissions and retry."
        ) from error
    except (plistlib.InvalidFileException, ExpatError, ValueError) as error:
        raise BundleDescriptorError(f"Failed to parse {plist_path}: {error}.") from error
    if not isinstance(payload, dict):
        raise BundleDescriptorError(
            f"Invalid {plist_path}: expected dictionary at top level."
        )
    return payload


def _locate_binaries(bundle_path: Path, info: Mapping[str, Any]) -> list[Path]:
    executable = _string_field(info, "CFBundleExecutable")
    if executable:
        for relative_dir in EXECUTABLE_LOCATIONS:
            candidate = bundle_path / relative_dir / executable
            if candidate.is_file():
                return [candidate]
        raise BundleDescriptorError(
            f"Executable '{executable}' declared by {bundle_path} does not exist. "
            "Provide a complete bundle directory."
        )
    dwarf_dir = bundle_path / DWARF_DIR
    if dwarf_dir.is_dir():
        dwarf_files = sorted(path for path in dwarf_dir.iterdir() if path.is_file())
        if dwarf_files:
            return dwarf_files
    raise BundleDescriptorError(
        f"Bundle {bundle_path} has neither CFBundleExecutable nor DWARF files. "
        "Provide a bundle with a compiled binary."
    )


def _string_field(info: Mapping[str, Any], key: str) -> str | None:
    value = info.get(key)
    if isinstance(value, str) and value:
        return value
    return None
