"""Staging-plan execution against a storage manager."""

from __future__ import annotations

from core.logging_config import get_logger
from core.staging_plan import StagingPlan
from core.types import StagedArtifact
from storage.manager import StorageManager

_LOGGER = get_logger(__name__)


def execute_staging_plan(plan: StagingPlan, manager: StorageManager) -> tuple[StagedArtifact, ...]:
    """Persist each plan artifact in order, stopping at the first failure.

    Args:
        plan: Validated staging plan.
        manager: Manager for the plan's target.

    Returns:
        One outcome per attempted artifact; the last one carries the
        error message when a save failed.
    """
    outcomes: list[StagedArtifact] = []
    for artifact in plan.artifacts:
        result = manager.save_artifact(artifact.kind, artifact.path)
        if result.error is not None:
            outcomes.append(
                StagedArtifact(
                    kind=artifact.kind,
                    source_path=artifact.path,
                    error_message=str(result.error),
                )
            )
            _LOGGER.error(
                "staging_plan_stopped",
                udid=plan.target.udid,
                kind=artifact.kind,
                path=str(artifact.path),
                error=str(result.error),
            )
            break
        outcomes.append(
            StagedArtifact(kind=artifact.kind, source_path=artifact.path, stored_as=result.unwrap())
        )
    return tuple(outcomes)
