"""Helpers building minimal on-disk bundles for storage tests."""

from __future__ import annotations

import plistlib
import struct
from pathlib import Path
from typing import Mapping, Sequence

_CPU_TYPES = {
    "arm64": (0x0100000C, 0),
    "arm64e": (0x0100000C, 2),
    "x86_64": (0x01000007, 3),
    "i386": (7, 3),
    "armv7": (12, 9),
}


def thin_macho(architecture: str) -> bytes:
    """Return a little-endian 64-bit Mach-O header for one architecture."""
    cpu_type, cpu_subtype = _CPU_TYPES[architecture]
    return struct.pack("<Iii", 0xFEEDFACF, cpu_type, cpu_subtype) + b"\0" * 20


def fat_macho(architectures: Sequence[str]) -> bytes:
    """Return a universal binary header listing several architectures."""
    payload = struct.pack(">II", 0xCAFEBABE, len(architectures))
    for index, architecture in enumerate(architectures):
        cpu_type, cpu_subtype = _CPU_TYPES[architecture]
        payload += struct.pack(">iiIII", cpu_type, cpu_subtype, 4096 * (index + 1), 32, 12)
    return payload


def macho_for(architectures: Sequence[str]) -> bytes:
    if len(architectures) == 1:
        return thin_macho(architectures[0])
    return fat_macho(architectures)


def make_bundle(
    parent: Path,
    name: str,
    identifier: str,
    architectures: Sequence[str] = ("arm64",),
    version: str = "1.0",
    macos_layout: bool = False,
) -> Path:
    """Create a bundle directory with Info.plist and executable.

    Args:
        parent: Directory receiving the bundle.
        name: Bundle directory name, e.g. ``Foo.app``.
        identifier: CFBundleIdentifier value.
        architectures: Architectures written into the executable header.
        version: CFBundleShortVersionString value.
        macos_layout: Use ``Contents/`` layout instead of the flat iOS one.

    Returns:
        Bundle directory path.
    """
    bundle_path = parent / name
    executable = Path(name).stem
    contents = bundle_path / "Contents" if macos_layout else bundle_path
    binary_dir = contents / "MacOS" if macos_layout else bundle_path
    binary_dir.mkdir(parents=True, exist_ok=True)
    info = {
        "CFBundleIdentifier": identifier,
        "CFBundleExecutable": executable,
        "CFBundleName": executable,
        "CFBundleShortVersionString": version,
    }
    with (contents / "Info.plist").open("wb") as handle:
        plistlib.dump(info, handle)
    (binary_dir / executable).write_bytes(macho_for(architectures))
    return bundle_path


def make_dsym(
    parent: Path, name: str, identifier: str, architectures: Sequence[str] = ("arm64",)
) -> Path:
    """Create a dSYM bundle whose DWARF file carries the architectures."""
    bundle_path = parent / name
    dwarf_dir = bundle_path / "Contents" / "Resources" / "DWARF"
    dwarf_dir.mkdir(parents=True)
    with (bundle_path / "Contents" / "Info.plist").open("wb") as handle:
        plistlib.dump({"CFBundleIdentifier": identifier}, handle)
    (dwarf_dir / Path(name).stem).write_bytes(macho_for(architectures))
    return bundle_path


def make_xctestrun(
    path: Path,
    targets: Mapping[str, Mapping[str, object]],
    format_version: int = 1,
) -> Path:
    """Write an xctestrun manifest with the given target entries."""
    if format_version == 1:
        payload: dict[str, object] = {"__xctestrun_metadata__": {"FormatVersion": 1}}
        payload.update({name: dict(entry) for name, entry in targets.items()})
    else:
        payload = {
            "__xctestrun_metadata__": {"FormatVersion": format_version},
            "TestConfigurations": [
                {
                    "Name": "Default",
                    "TestTargets": [
                        {"BlueprintName": name, **entry} for name, entry in targets.items()
                    ],
                }
            ],
        }
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        plistlib.dump(payload, handle)
    return path
