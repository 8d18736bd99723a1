"""Targetstore CLI entry points.

This module exposes commands for saving and inspecting stored artifacts.
It maps argparse commands onto storage manager calls.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from cli.stage_command import add_stage_command, run_stage_command
from core.config import TargetStoreConfig
from core.errors import TargetStoreError
from core.target import LocalTarget
from core.types import SUPPORTED_ARTIFACT_KINDS, TestRunDescriptor
from storage.manager import StorageManager


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="targetstore", description="Targetstore artifact CLI")
    parser.add_argument("--data-root", help="Override TARGETSTORE_DATA_ROOT for this command")
    parser.add_argument("--udid", help="Target udid naming the storage directory")
    parser.add_argument("--architecture", help="Target architecture, e.g. arm64")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_save_command(subparsers)
    _add_list_command(subparsers)
    _add_show_test_command(subparsers)
    _add_clean_command(subparsers)
    _add_env_command(subparsers)
    add_stage_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the targetstore CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args.data_root)
        if args.command == "stage":
            return run_stage_command(config, args)
        if not args.udid or not args.architecture:
            parser.error(f"--udid and --architecture are required for '{args.command}'")
        target = LocalTarget(udid=args.udid, architecture=args.architecture)
        with StorageManager.for_target(target, config=config).unwrap() as manager:
            return _dispatch(parser, manager, args)
    except TargetStoreError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1


def _dispatch(
    parser: argparse.ArgumentParser, manager: StorageManager, args: argparse.Namespace
) -> int:
    if args.command == "save":
        return _run_save_command(manager, args)
    if args.command == "list":
        return _run_list_command(manager, args)
    if args.command == "show-test":
        return _run_show_test_command(manager, args)
    if args.command == "clean":
        return _run_clean_command(manager)
    if args.command == "env":
        return _run_env_command(parser, manager, args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(data_root: str | None) -> TargetStoreConfig:
    """Build config with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Runtime config.
    """
    config = TargetStoreConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    return config


def _run_save_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle save command.

    Args:
        manager: Storage manager for the target.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    stored_as = manager.save_artifact(args.kind, Path(args.path)).unwrap()
    print(stored_as)
    return 0


def _run_list_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle list command: one stored key per line."""
    for key in manager.list_artifacts(args.kind).unwrap():
        print(key)
    return 0


def _run_show_test_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle show-test command.

    Args:
        manager: Storage manager for the target.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    descriptor = manager.xctest.test_descriptor_with_id(args.bundle_id).unwrap()
    print(f"bundle_id={descriptor.bundle_id}")
    print(f"name={descriptor.name}")
    print(f"path={descriptor.path}")
    if isinstance(descriptor, TestRunDescriptor):
        for target in descriptor.targets:
            print(
                f"target={target.name}\t"
                f"{target.bundle.identifier}\t"
                f"{target.test_host_path or '-'}"
            )
    else:
        print(f"architectures={','.join(sorted(descriptor.bundle.architectures))}")
    return 0


def _run_clean_command(manager: StorageManager) -> int:
    removed = manager.clean().unwrap()
    print(f"removed={removed}")
    return 0


def _run_env_command(
    parser: argparse.ArgumentParser, manager: StorageManager, args: argparse.Namespace
) -> int:
    """Handle env command: print interpolated KEY=VALUE pairs."""
    environment = {}
    for pair in args.pairs:
        key, separator, value = pair.partition("=")
        if not separator or not key:
            parser.error(f"Invalid environment pair '{pair}': expected KEY=VALUE")
        environment[key] = value
    for key, value in manager.interpolate_environment_replacements(environment).items():
        print(f"{key}={value}")
    return 0


def _add_save_command(subparsers: Any) -> None:
    """Register save subcommand."""
    parser = subparsers.add_parser("save", help="Persist an artifact into target storage")
    parser.add_argument("kind", choices=SUPPORTED_ARTIFACT_KINDS, help="Artifact kind")
    parser.add_argument("path", help="File, bundle, or containing directory to persist")


def _add_list_command(subparsers: Any) -> None:
    """Register list subcommand."""
    parser = subparsers.add_parser("list", help="List stored artifacts of one kind")
    parser.add_argument("kind", choices=SUPPORTED_ARTIFACT_KINDS, help="Artifact kind")


def _add_show_test_command(subparsers: Any) -> None:
    """Register show-test subcommand."""
    parser = subparsers.add_parser("show-test", help="Show an installed test descriptor")
    parser.add_argument("bundle_id", help="Bundle id of the installed test")


def _add_clean_command(subparsers: Any) -> None:
    """Register clean subcommand."""
    subparsers.add_parser("clean", help="Remove every stored artifact for the target")


def _add_env_command(subparsers: Any) -> None:
    """Register env subcommand."""
    parser = subparsers.add_parser(
        "env",
        help="Interpolate storage-root placeholders into KEY=VALUE pairs",
    )
    parser.add_argument("pairs", nargs="*", help="Environment pairs, e.g. DYLD=$IDB_DYLIB_ROOT/x")
