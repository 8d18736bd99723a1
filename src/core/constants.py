"""Core constants used across targetstore modules.

This module centralizes directory names, file extensions, and tokens.
Keeping values here avoids magic literals in storage logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".targetstore")
DATA_ROOT_ENV_VAR = "TARGETSTORE_DATA_ROOT"

XCTEST_DIR_NAME = "xctest"
APPLICATION_DIR_NAME = "application"
DYLIB_DIR_NAME = "dylib"
DSYM_DIR_NAME = "dsym"
FRAMEWORK_DIR_NAME = "framework"

STAGING_PREFIX = ".staging-"

XCTEST_EXTENSION = ".xctest"
XCTESTRUN_EXTENSION = ".xctestrun"
APPLICATION_EXTENSION = ".app"
DSYM_EXTENSION = ".dSYM"

INFO_PLIST_FILE_NAME = "Info.plist"
INFO_PLIST_LOCATIONS = (
    Path(INFO_PLIST_FILE_NAME),
    Path("Contents") / INFO_PLIST_FILE_NAME,
    Path("Resources") / INFO_PLIST_FILE_NAME,
)
EXECUTABLE_LOCATIONS = (Path("."), Path("Contents") / "MacOS")
DWARF_DIR = Path("Contents") / "Resources" / "DWARF"

TESTROOT_TOKEN = "__TESTROOT__"
TESTHOST_TOKEN = "__TESTHOST__"
XCTESTRUN_METADATA_KEY = "__xctestrun_metadata__"
SUPPORTED_XCTESTRUN_FORMAT_VERSIONS = (1, 2)

XCTEST_ROOT_TOKEN = "$IDB_XCTEST_ROOT"
APPLICATION_ROOT_TOKEN = "$IDB_APPLICATION_ROOT"
DYLIB_ROOT_TOKEN = "$IDB_DYLIB_ROOT"
DSYM_ROOT_TOKEN = "$IDB_DSYM_ROOT"
FRAMEWORK_ROOT_TOKEN = "$IDB_FRAMEWORK_ROOT"

STAGING_PLAN_VERSION = 1
