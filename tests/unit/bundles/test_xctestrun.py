"""Unit tests for xctestrun manifest parsing."""

from __future__ import annotations

import plistlib

import pytest

from bundles.xctestrun import read_xctestrun, write_xctestrun
from core.errors import BundleDescriptorError
from tests.bundle_factory import make_xctestrun


def test_read_xctestrun_v1_entries(tmp_path) -> None:
    """Format 1 manifests should list one entry per top-level target key."""
    manifest_path = make_xctestrun(
        tmp_path / "Example.xctestrun",
        {
            "ExampleTests": {
                "TestBundlePath": "__TESTHOST__/PlugIns/ExampleTests.xctest",
                "TestHostPath": "__TESTROOT__/Example.app",
                "EnvironmentVariables": {"LANG": "en"},
                "CommandLineArguments": ["-verbose"],
                "SkipTestIdentifiers": ["ExampleTests/testSlow"],
            }
        },
    )

    manifest = read_xctestrun(manifest_path)
    entry = manifest.entries[0]

    assert (
        manifest.format_version == 1
        and entry.name == "ExampleTests"
        and entry.test_host_path == "__TESTROOT__/Example.app"
        and entry.environment == {"LANG": "en"}
        and entry.arguments == ("-verbose",)
        and entry.skip_tests == ("ExampleTests/testSlow",)
    )


def test_read_xctestrun_v2_entries(tmp_path) -> None:
    """Format 2 manifests should list targets of every test configuration."""
    manifest_path = make_xctestrun(
        tmp_path / "Plan.xctestrun",
        {
            "UnitTests": {"TestBundlePath": "__TESTROOT__/UnitTests.xctest"},
            "UITests": {"TestBundlePath": "__TESTROOT__/UITests.xctest"},
        },
        format_version=2,
    )

    manifest = read_xctestrun(manifest_path)

    assert [entry.name for entry in manifest.entries] == ["UnitTests", "UITests"]
    assert manifest.entries[1].location == ("TestConfigurations", 0, "TestTargets", 1)


def test_read_xctestrun_rejects_unknown_format_version(tmp_path) -> None:
    """Unsupported format versions should be rejected."""
    manifest_path = tmp_path / "Future.xctestrun"
    with manifest_path.open("wb") as handle:
        plistlib.dump({"__xctestrun_metadata__": {"FormatVersion": 9}}, handle)

    with pytest.raises(BundleDescriptorError):
        read_xctestrun(manifest_path)

    assert True


def test_read_xctestrun_requires_test_bundle_path(tmp_path) -> None:
    """Targets without TestBundlePath cannot be resolved later."""
    manifest_path = make_xctestrun(tmp_path / "Bad.xctestrun", {"Tests": {"TestHostPath": "x"}})

    with pytest.raises(BundleDescriptorError):
        read_xctestrun(manifest_path)

    assert True


def test_read_xctestrun_rejects_manifest_without_targets(tmp_path) -> None:
    """A manifest with only metadata lists nothing to run."""
    manifest_path = make_xctestrun(tmp_path / "Empty.xctestrun", {})

    with pytest.raises(BundleDescriptorError):
        read_xctestrun(manifest_path)

    assert True


def test_write_xctestrun_applies_updates_without_touching_source(tmp_path) -> None:
    """Rewritten manifests should carry updates while the source stays intact."""
    source_path = make_xctestrun(
        tmp_path / "Example.xctestrun",
        {"ExampleTests": {"TestBundlePath": "/abs/ExampleTests.xctest"}},
    )
    manifest = read_xctestrun(source_path)
    destination = tmp_path / "out.xctestrun"

    write_xctestrun(
        manifest,
        destination,
        {("ExampleTests",): {"TestBundlePath": "__TESTROOT__/ExampleTests.xctest"}},
    )
    rewritten = read_xctestrun(destination)

    assert rewritten.entries[0].test_bundle_path == "__TESTROOT__/ExampleTests.xctest"
    assert read_xctestrun(source_path).entries[0].test_bundle_path == "/abs/ExampleTests.xctest"
