from __future__ import annotations

import os
import sys

import pytest

from steadyhost.core.drivers.registry import DriverRegistry
from steadyhost.core.errors import VerifyFailed
from steadyhost.core.manifest.models import Manifest
from steadyhost.core.verify.checks import extract_version
from steadyhost.core.verify.engine import VerifyEngine

from .helpers.fakes import FakeDriver, FakeRunner
from .helpers.manifests import app, manifest, write_text


def _m(checks, apps=None) -> Manifest:
    return Manifest.model_validate(manifest(apps or [], verify=checks))


def test_file_exists(tmp_path):
    present = write_text(str(tmp_path / "here.txt"), "x")
    report = VerifyEngine().run(
        _m([{"type": "file-exists", "path": present}, {"type": "file-exists", "path": str(tmp_path / "gone")}])
    )
    assert [r.passed for r in report.results] == [True, False]
    assert report.counts() == {"total": 2, "pass": 1, "fail": 1}
    assert report.success is False


def test_command_exists_uses_path_lookup():
    report = VerifyEngine().run(
        _m([{"type": "command-exists", "command": sys.executable}, {"type": "command-exists", "command": "no-such-tool-xyz"}])
    )
    assert report.results[0].passed is True
    assert report.results[1].passed is False


def test_version_check_against_app_inventory_never_installs():
    drv = FakeDriver("fake", {"Git.Git": "2.44.0"})
    engine = VerifyEngine(registry=DriverRegistry([drv], primary="fake"))
    report = engine.run(
        _m(
            [
                {"type": "version", "app": "Git.Git", "constraint": ">=2.40"},
                {"type": "version", "app": "Git.Git", "constraint": ">=3.0"},
                {"type": "version", "app": "Missing.App", "constraint": ">=1.0"},
            ],
            apps=[app("Git.Git")],
        ),
        platform="windows",
    )
    assert [r.passed for r in report.results] == [True, False, False]
    assert report.results[2].message == "not installed"
    assert drv.mutations() == []


def test_version_check_without_inventory_fails_cleanly():
    report = VerifyEngine().run(_m([{"type": "version", "app": "Git.Git", "constraint": ">=1.0"}]))
    assert report.results[0].passed is False
    assert "inventory" in report.results[0].message


def test_version_check_from_command_output():
    runner = FakeRunner({sys.executable: "Python 3.12.1\n"})
    report = VerifyEngine(runner=runner).run(
        _m(
            [
                {"type": "version", "command": sys.executable, "constraint": ">=3.8"},
                {"type": "version", "command": sys.executable, "constraint": "==2.7"},
            ]
        )
    )
    assert [r.passed for r in report.results] == [True, False]
    assert runner.calls[0] == [sys.executable, "--version"]


def test_registry_check_fails_off_windows():
    if os.name == "nt":
        pytest.skip("registry is available on Windows")
    report = VerifyEngine().run(_m([{"type": "registry-key-exists", "path": "HKLM\\Software\\Nope"}]))
    assert report.results[0].passed is False
    assert "Windows" in report.results[0].message


def test_version_check_needs_subject():
    with pytest.raises(ValueError):
        _m([{"type": "version", "constraint": ">=1"}])


def test_raise_for_failures():
    report = VerifyEngine().run(_m([{"type": "file-exists", "path": "/definitely/not/here"}]))
    with pytest.raises(VerifyFailed) as ei:
        report.raise_for_failures()
    assert ei.value.code == "VERIFY_FAILED"
    assert report.to_dict()["results"][0]["pass"] is False


def test_extract_version():
    assert extract_version("git version 2.44.0.windows.1") == "2.44.0"
    assert extract_version("v18") == "18"
    assert extract_version("nothing here") is None
