from __future__ import annotations

import os

import pytest

from steadyhost.core.config.models import EngineConfig
from steadyhost.core.config.paths import StatePaths
from steadyhost.core.drivers.registry import DriverRegistry
from steadyhost.core.manifest.resolver import ManifestResolver
from steadyhost.core.state.store import StateStore

from .helpers.fakes import FakeDriver, FakeInUseProbe


@pytest.fixture
def state_paths(tmp_path):
    """
    Isolated state root (state/, logs/) under tmp_path/home.
    """
    paths = StatePaths(root=str(tmp_path / "home"))
    os.makedirs(paths.state_dir, exist_ok=True)
    return paths


@pytest.fixture
def engine_config(state_paths, tmp_path):
    return EngineConfig(
        state_root=state_paths.root,
        manifests_root=str(tmp_path / "manifests"),
        primary_driver="fake",
        max_parallel=4,
        sensitive_paths=[str(tmp_path / "secrets")],
        unsafe_parallel_patterns=["Serial.*"],
    )


@pytest.fixture
def fake_driver():
    return FakeDriver("fake")


@pytest.fixture
def registry(fake_driver):
    return DriverRegistry([fake_driver], primary="fake")


@pytest.fixture
def store(state_paths):
    return StateStore(state_paths)


@pytest.fixture
def resolver(tmp_path):
    return ManifestResolver(manifests_root=str(tmp_path / "manifests"))


@pytest.fixture
def idle_probe():
    return FakeInUseProbe()
