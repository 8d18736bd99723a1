"""Typed xctestrun manifest parsing.

This module loads xctestrun property lists (format versions 1 and 2)
into test-target entries and writes rewritten manifests back to disk.
Path tokens are left unresolved; resolution is a storage concern.
"""

from __future__ import annotations

import copy
import plistlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from xml.parsers.expat import ExpatError

from core.constants import SUPPORTED_XCTESTRUN_FORMAT_VERSIONS, XCTESTRUN_METADATA_KEY
from core.errors import BundleDescriptorError, StorageIOError


@dataclass(frozen=True)
class XCTestRunEntry:
    """One test target of an xctestrun manifest, paths still tokenized.

    Attributes:
        name: Target key (v1) or BlueprintName (v2).
        location: Position of the entry inside the manifest payload.
        test_bundle_path: Raw TestBundlePath value.
        test_host_path: Raw TestHostPath value, if any.
        ui_target_app_path: Raw UITargetAppPath value, if any.
        test_bundle_identifier: Optional TestBundleIdentifier hint.
    """

    name: str
    location: tuple[Any, ...]
    test_bundle_path: str
    test_host_path: str | None = None
    ui_target_app_path: str | None = None
    test_bundle_identifier: str | None = None
    environment: Mapping[str, str] = field(default_factory=dict)
    testing_environment: Mapping[str, str] = field(default_factory=dict)
    arguments: tuple[str, ...] = ()
    only_tests: tuple[str, ...] = ()
    skip_tests: tuple[str, ...] = ()


@dataclass(frozen=True)
class XCTestRunManifest:
    """Validated xctestrun manifest."""

    path: Path
    format_version: int
    entries: tuple[XCTestRunEntry, ...]
    payload: Mapping[str, Any]


def read_xctestrun(manifest_path: Path) -> XCTestRunManifest:
    """Load and validate an xctestrun manifest from disk.

    Args:
        manifest_path: Path of the ``.xctestrun`` file.

    Returns:
        Manifest with at least one test-target entry.

    Raises:
        BundleDescriptorError: If the manifest is malformed or empty.
    """
    payload = _load_payload(manifest_path)
    format_version = _parse_format_version(manifest_path, payload)
    if format_version == 1:
        entries = _parse_v1_entries(manifest_path, payload)
    else:
        entries = _parse_v2_entries(manifest_path, payload)
    if not entries:
        raise BundleDescriptorError(
            f"xctestrun {manifest_path} lists no test targets. Regenerate it with build-for-testing."
        )
    return XCTestRunManifest(
        path=manifest_path,
        format_version=format_version,
        entries=tuple(entries),
        payload=payload,
    )


def write_xctestrun(
    manifest: XCTestRunManifest,
    destination: Path,
    updates: Mapping[tuple[Any, ...], Mapping[str, str]],
) -> None:
    """Write a copy of the manifest with per-entry key updates applied.

    Args:
        manifest: Parsed source manifest.
        destination: Output file path.
        updates: Replacement key/value pairs keyed by entry location.

    Raises:
        StorageIOError: If the destination cannot be written.
    """
    payload = copy.deepcopy(dict(manifest.payload))
    for location, changes in updates.items():
        target = _entry_at(payload, location)
        target.update(changes)
    try:
        with destination.open("wb") as handle:
            plistlib.dump(payload, handle)
    except OSError as error:
        raise StorageIOError(f"Failed to write xctestrun {destination}: {error}.") from error


def _load_payload(manifest_path: Path) -> dict[str, Any]:
    try:
        with manifest_path.open("rb") as handle:
            payload = plistlib.load(handle)
    except OSError as error:
        raise BundleDescriptorError(
            f"Failed to read xctestrun {manifest_path}: {error}. Check file permissions and retry."
        ) from error
    except (plistlib.InvalidFileException, ExpatError, ValueError) as error:
        raise BundleDescriptorError(
            f"Failed to parse xctestrun {manifest_path}: {error}. Fix the plist and retry."
        ) from error
    if not isinstance(payload, dict):
        raise BundleDescriptorError(
            f"Invalid xctestrun {manifest_path}: expected dictionary at top level."
        )
    return payload


def _parse_format_version(manifest_path: Path, payload: Mapping[str, Any]) -> int:
    metadata = payload.get(XCTESTRUN_METADATA_KEY, {})
    if not isinstance(metadata, Mapping):
        raise BundleDescriptorError(
            f"Invalid xctestrun {manifest_path}: {XCTESTRUN_METADATA_KEY} must be a dictionary."
        )
    raw_version = metadata.get("FormatVersion", 1)
    if raw_version not in SUPPORTED_XCTESTRUN_FORMAT_VERSIONS:
        raise BundleDescriptorError(
            f"Unsupported xctestrun format version {raw_version} in {manifest_path}. "
            f"Supported versions: {list(SUPPORTED_XCTESTRUN_FORMAT_VERSIONS)}."
        )
    return int(raw_version)


def _parse_v1_entries(
    manifest_path: Path, payload: Mapping[str, Any]
) -> list[XCTestRunEntry]:
    entries = []
    for key, value in payload.items():
        if key == XCTESTRUN_METADATA_KEY:
            continue
        if not isinstance(value, Mapping):
            raise BundleDescriptorError(
                f"Invalid xctestrun {manifest_path}: target '{key}' must be a dictionary."
            )
        entries.append(_parse_entry(manifest_path, str(key), (key,), value))
    return entries


def _parse_v2_entries(
    manifest_path: Path, payload: Mapping[str, Any]
) -> list[XCTestRunEntry]:
    configurations = payload.get("TestConfigurations")
    if not isinstance(configurations, list):
        raise BundleDescriptorError(
            f"Invalid xctestrun {manifest_path}: TestConfigurations must be a list."
        )
    entries = []
    for config_index, configuration in enumerate(configurations):
        targets = configuration.get("TestTargets") if isinstance(configuration, Mapping) else None
        if not isinstance(targets, list):
            raise BundleDescriptorError(
                f"Invalid xctestrun {manifest_path}: configuration {config_index} "
                "has no TestTargets list."
            )
        for target_index, target in enumerate(targets):
            if not isinstance(target, Mapping):
                raise BundleDescriptorError(
                    f"Invalid xctestrun {manifest_path}: test target {target_index} "
                    f"of configuration {config_index} must be a dictionary."
                )
            name = str(target.get("BlueprintName") or f"target-{config_index}-{target_index}")
            location = ("TestConfigurations", config_index, "TestTargets", target_index)
            entries.append(_parse_entry(manifest_path, name, location, target))
    return entries


def _parse_entry(
    manifest_path: Path,
    name: str,
    location: tuple[Any, ...],
    value: Mapping[str, Any],
) -> XCTestRunEntry:
    test_bundle_path = value.get("TestBundlePath")
    if not isinstance(test_bundle_path, str) or not test_bundle_path:
        raise BundleDescriptorError(
            f"Invalid xctestrun {manifest_path}: target '{name}' has no TestBundlePath."
        )
    return XCTestRunEntry(
        name=name,
        location=location,
        test_bundle_path=test_bundle_path,
        test_host_path=_optional_string(value, "TestHostPath"),
        ui_target_app_path=_optional_string(value, "UITargetAppPath"),
        test_bundle_identifier=_optional_string(value, "TestBundleIdentifier"),
        environment=_string_mapping(value, "EnvironmentVariables"),
        testing_environment=_string_mapping(value, "TestingEnvironmentVariables"),
        arguments=_string_tuple(value, "CommandLineArguments"),
        only_tests=_string_tuple(value, "OnlyTestIdentifiers"),
        skip_tests=_string_tuple(value, "SkipTestIdentifiers"),
    )


def _entry_at(payload: Any, location: tuple[Any, ...]) -> dict[str, Any]:
    target = payload
    for key in location:
        target = target[key]
    return target


def _optional_string(value: Mapping[str, Any], key: str) -> str | None:
    raw = value.get(key)
    return raw if isinstance(raw, str) and raw else None


def _string_mapping(value: Mapping[str, Any], key: str) -> dict[str, str]:
    raw = value.get(key)
    if not isinstance(raw, Mapping):
        return {}
    return {str(item_key): str(item_value) for item_key, item_value in raw.items()}


def _string_tuple(value: Mapping[str, Any], key: str) -> tuple[str, ...]:
    raw = value.get(key)
    if not isinstance(raw, list):
        return ()
    return tuple(str(item) for item in raw)
