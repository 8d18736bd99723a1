"""Typed staging-plan parsing.

This module loads and validates YAML staging plans: one target plus an
ordered list of artifacts to persist into that target's storage. The
CLI and SDK consume the same validated plan object.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, cast

import yaml

from core.constants import STAGING_PLAN_VERSION
from core.errors import StagingPlanError
from core.target import LocalTarget
from core.types import SUPPORTED_ARTIFACT_KINDS, ArtifactKind


@dataclass(frozen=True)
class StagingArtifact:
    """One artifact listed in a staging plan."""

    kind: ArtifactKind
    path: Path


@dataclass(frozen=True)
class StagingPlan:
    """Validated staging-plan root object."""

    version: int
    target: LocalTarget
    artifacts: tuple[StagingArtifact, ...]


def load_staging_plan(plan_path: str) -> StagingPlan:
    """Load and validate a YAML staging plan from disk.

    Relative artifact paths are resolved against the plan's directory.

    Args:
        plan_path: File path to YAML staging plan.

    Returns:
        Fully validated staging plan.

    Raises:
        StagingPlanError: If file is invalid or schema checks fail.
    """
    plan_file = Path(plan_path).expanduser().resolve()
    payload = _load_yaml_payload(plan_file)
    root_mapping = _expect_mapping(payload, "staging plan root")
    _validate_keys(root_mapping, {"version", "target", "artifacts"}, "staging plan root")
    version = _parse_version(root_mapping)
    target = _parse_target(root_mapping)
    artifacts = _parse_artifacts(root_mapping, plan_file.parent)
    return StagingPlan(version=version, target=target, artifacts=artifacts)


def _load_yaml_payload(plan_file: Path) -> object:
    if not plan_file.exists():
        raise StagingPlanError(
            f"Staging plan does not exist at {plan_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(plan_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise StagingPlanError(
            f"Failed to read staging plan at {plan_file}: {error}. Check file permissions."
        ) from error
    except UnicodeDecodeError as error:
        raise StagingPlanError(
            f"Staging plan at {plan_file} is not UTF-8 text: {error}. Save it as UTF-8."
        ) from error
    except yaml.YAMLError as error:
        raise StagingPlanError(
            f"Failed to parse YAML staging plan at {plan_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise StagingPlanError(
            f"Staging plan at {plan_file} is empty. Define 'version', 'target', and 'artifacts'."
        )
    return payload


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise StagingPlanError(
                    f"Invalid {context}: expected string keys, got {type(key).__name__}."
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise StagingPlanError(
        f"Invalid {context}: expected object mapping, got {type(value).__name__}."
    )


def _expect_sequence(value: object, context: str) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise StagingPlanError(f"Invalid {context}: expected list, got {type(value).__name__}.")


def _parse_version(root_mapping: Mapping[str, object]) -> int:
    raw_version = root_mapping.get("version")
    if not isinstance(raw_version, int) or isinstance(raw_version, bool):
        raise StagingPlanError(
            f"Staging plan field 'version' must be an integer. Set version: {STAGING_PLAN_VERSION}."
        )
    if raw_version != STAGING_PLAN_VERSION:
        raise StagingPlanError(
            f"Unsupported staging plan version {raw_version}. Use version: {STAGING_PLAN_VERSION}."
        )
    return raw_version


def _parse_target(root_mapping: Mapping[str, object]) -> LocalTarget:
    raw_target = root_mapping.get("target")
    if raw_target is None:
        raise StagingPlanError(
            "Staging plan missing required field 'target'. Add udid and architecture."
        )
    target_mapping = _expect_mapping(raw_target, "staging plan target")
    _validate_keys(target_mapping, {"udid", "architecture"}, "staging plan target")
    return LocalTarget(
        udid=_required_string(target_mapping, "udid", "staging plan target"),
        architecture=_required_string(target_mapping, "architecture", "staging plan target"),
    )


def _parse_artifacts(
    root_mapping: Mapping[str, object], plan_dir: Path
) -> tuple[StagingArtifact, ...]:
    raw_artifacts = root_mapping.get("artifacts")
    if raw_artifacts is None:
        raise StagingPlanError(
            "Staging plan missing required field 'artifacts'. Add a non-empty list."
        )
    rows = _expect_sequence(raw_artifacts, "staging plan artifacts")
    if len(rows) == 0:
        raise StagingPlanError("Staging plan field 'artifacts' must include at least one entry.")
    return tuple(_parse_artifact(row, index, plan_dir) for index, row in enumerate(rows))


def _parse_artifact(row: object, index: int, plan_dir: Path) -> StagingArtifact:
    context = f"staging plan artifact #{index + 1}"
    artifact_mapping = _expect_mapping(row, context)
    _validate_keys(artifact_mapping, {"kind", "path"}, context)
    raw_kind = _required_string(artifact_mapping, "kind", context)
    if raw_kind not in SUPPORTED_ARTIFACT_KINDS:
        supported_rows = ", ".join(SUPPORTED_ARTIFACT_KINDS)
        raise StagingPlanError(
            f"Unsupported kind '{raw_kind}' in {context}. Use one of: {supported_rows}."
        )
    raw_path = Path(_required_string(artifact_mapping, "path", context)).expanduser()
    path = raw_path if raw_path.is_absolute() else plan_dir / raw_path
    return StagingArtifact(kind=cast(ArtifactKind, raw_kind), path=path)


def _required_string(mapping: Mapping[str, object], field_name: str, context: str) -> str:
    raw_value = mapping.get(field_name)
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value.strip()
    raise StagingPlanError(f"Invalid {context}: field '{field_name}' must be a non-empty string.")


def _validate_keys(mapping: Mapping[str, object], allowed_keys: set[str], context: str) -> None:
    unknown_keys = sorted(set(mapping) - allowed_keys)
    if unknown_keys:
        raise StagingPlanError(f"Invalid {context}: unknown fields {', '.join(unknown_keys)}.")
