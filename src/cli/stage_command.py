"""Staging-plan CLI command wiring.

This module registers the stage subcommand and delegates execution to the
shared staging-plan engine used by CLI and SDK entry points.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any

from core.config import TargetStoreConfig
from core.staging_plan import load_staging_plan
from storage.manager import StorageManager
from storage.staging import execute_staging_plan


def add_stage_command(subparsers: Any) -> None:
    """Register stage subcommand."""
    parser = subparsers.add_parser(
        "stage",
        help="Persist every artifact listed in a YAML staging plan",
    )
    parser.add_argument("plan_file", help="Path to YAML staging plan")


def run_stage_command(config: TargetStoreConfig, args: argparse.Namespace) -> int:
    """Handle stage command invocation.

    Prints one line per attempted artifact and returns 1 when a save failed.
    """
    plan = load_staging_plan(args.plan_file)
    with StorageManager.for_target(plan.target, config=config).unwrap() as manager:
        outcomes = execute_staging_plan(plan, manager)
    for outcome in outcomes:
        status = outcome.stored_as if outcome.error_message is None else "FAILED"
        print(f"{outcome.kind}\t{outcome.source_path}\t{status}")
    if outcomes and outcomes[-1].error_message is not None:
        print(f"error: {outcomes[-1].error_message}", file=sys.stderr)
        return 1
    return 0
