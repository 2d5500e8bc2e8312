from __future__ import annotations

import pytest

from steadyhost.core.drivers import registry as registry_mod
from steadyhost.core.drivers.registry import DriverRegistry, discover_drivers, snapshot_inventory
from steadyhost.core.errors import DriverUnavailable

from .helpers.fakes import FakeDriver


class _EntryPoint:
    def __init__(self, name, target):
        self.name = name
        self._target = target

    def load(self):
        return self._target


def _broken():
    raise RuntimeError("missing binary")


def test_discover_drivers_skips_broken_plugins(monkeypatch):
    eps = [_EntryPoint("fake", FakeDriver), _EntryPoint("broken", _broken)]
    monkeypatch.setattr(registry_mod, "entry_points", lambda group: eps if group == "steadyhost.drivers" else [])
    found = discover_drivers()
    assert [d.name for d in found] == ["fake"]


def test_registry_primary_defaults_to_first():
    reg = DriverRegistry([FakeDriver("apt"), FakeDriver("snap")])
    assert reg.primary == "apt"
    assert reg.get(None).name == "apt"
    assert reg.names() == ["apt", "snap"]


def test_unknown_driver_raises():
    with pytest.raises(DriverUnavailable) as ei:
        DriverRegistry([FakeDriver("apt")]).get("brew")
    assert ei.value.fatal is True


def test_snapshot_inventory_lists_each_driver_once():
    a = FakeDriver("apt", {"git": "2.40"})
    b = FakeDriver("snap", {"code": None})
    inv = snapshot_inventory(DriverRegistry([a, b]), ["snap", "apt", "apt"])
    assert inv == {"apt": {"git": "2.40"}, "snap": {"code": ""}}
    assert [c for c in a.calls if c[0] == "list"] == [("list", "")]


def test_supports_upgrade_map():
    reg = DriverRegistry([FakeDriver("apt"), FakeDriver("pkg", upgrade=False)])
    assert reg.supports_upgrade() == {"apt": True, "pkg": False}
