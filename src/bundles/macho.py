"""Mach-O header reading.

This module extracts architecture names from thin and universal Mach-O
binaries without loading more than the header region of the file.
"""

from __future__ import annotations

import struct
from pathlib import Path

from core.errors import BundleDescriptorError

MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF
FAT_MAGIC = 0xCAFEBABE
FAT_MAGIC_64 = 0xCAFEBABF

CPU_ARCH_ABI64 = 0x01000000
CPU_ARCH_ABI64_32 = 0x02000000
CPU_TYPE_X86 = 7
CPU_TYPE_ARM = 12
CPU_TYPE_X86_64 = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM64 = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_TYPE_ARM64_32 = CPU_TYPE_ARM | CPU_ARCH_ABI64_32
CPU_SUBTYPE_MASK = 0xFF000000
CPU_SUBTYPE_ARM64E = 2

_ARM_SUBTYPES = {9: "armv7", 11: "armv7s", 12: "armv7k"}
_FAT_ARCH_SIZE = 20
_FAT_ARCH_64_SIZE = 32
# Java class files share FAT_MAGIC; real universal binaries never hold this many slices.
_MAX_FAT_ARCHS = 30


def read_architectures(binary_path: Path) -> frozenset[str]:
    """Read architecture names from a Mach-O binary.

    Args:
        binary_path: Thin or universal Mach-O file.

    Returns:
        Non-empty set of architecture names.

    Raises:
        BundleDescriptorError: If the file is unreadable or not Mach-O.
    """
    try:
        with binary_path.open("rb") as handle:
            header = handle.read(12)
            fat_magic = struct.unpack(">I", header[:4])[0] if len(header) >= 4 else 0
            if fat_magic in (FAT_MAGIC, FAT_MAGIC_64):
                nfat_arch = struct.unpack(">I", header[4:8])[0]
                if nfat_arch == 0 or nfat_arch > _MAX_FAT_ARCHS:
                    raise BundleDescriptorError(
                        f"Universal binary {binary_path} declares {nfat_arch} slices. "
                        "Rebuild the binary; the fat header is corrupt."
                    )
                entry_size = _FAT_ARCH_64_SIZE if fat_magic == FAT_MAGIC_64 else _FAT_ARCH_SIZE
                handle.seek(8)
                table = handle.read(entry_size * nfat_arch)
                return _fat_architectures(binary_path, table, nfat_arch, entry_size)
            return frozenset({_thin_architecture(binary_path, header)})
    except OSError as error:
        raise BundleDescriptorError(
            f"Failed to read binary {binary_path}: {error}. Check file permissions and retry."
        ) from error


def architecture_name(cpu_type: int, cpu_subtype: int) -> str | None:
    """Map a Mach-O cpu type pair onto its conventional architecture name."""
    subtype = cpu_subtype & ~CPU_SUBTYPE_MASK & 0xFFFFFFFF
    if cpu_type == CPU_TYPE_ARM64:
        return "arm64e" if subtype == CPU_SUBTYPE_ARM64E else "arm64"
    if cpu_type == CPU_TYPE_ARM64_32:
        return "arm64_32"
    if cpu_type == CPU_TYPE_X86_64:
        return "x86_64"
    if cpu_type == CPU_TYPE_X86:
        return "i386"
    if cpu_type == CPU_TYPE_ARM:
        return _ARM_SUBTYPES.get(subtype, "arm")
    return None


def _thin_architecture(binary_path: Path, header: bytes) -> str:
    if len(header) < 12:
        raise BundleDescriptorError(
            f"Binary {binary_path} is too short to be Mach-O. Provide a compiled bundle."
        )
    for byte_order in ("<", ">"):
        magic = struct.unpack(f"{byte_order}I", header[:4])[0]
        if magic in (MH_MAGIC, MH_MAGIC_64):
            cpu_type, cpu_subtype = struct.unpack(f"{byte_order}ii", header[4:12])
            return _require_name(binary_path, cpu_type, cpu_subtype)
    raise BundleDescriptorError(
        f"Binary {binary_path} is not a Mach-O file. Provide a compiled bundle."
    )


def _fat_architectures(
    binary_path: Path, table: bytes, nfat_arch: int, entry_size: int
) -> frozenset[str]:
    if len(table) < entry_size * nfat_arch:
        raise BundleDescriptorError(
            f"Universal binary {binary_path} is truncated. Rebuild the binary."
        )
    names = set()
    for index in range(nfat_arch):
        offset = index * entry_size
        cpu_type, cpu_subtype = struct.unpack(">ii", table[offset : offset + 8])
        names.add(_require_name(binary_path, cpu_type, cpu_subtype))
    return frozenset(names)


def _require_name(binary_path: Path, cpu_type: int, cpu_subtype: int) -> str:
    name = architecture_name(cpu_type, cpu_subtype)
    if name is None:
        raise BundleDescriptorError(
            f"Binary {binary_path} has unsupported cpu type {cpu_type:#x}."
        )
    return name
