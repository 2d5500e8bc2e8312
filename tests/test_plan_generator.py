from __future__ import annotations

import json

import pytest

from steadyhost.core.drivers.registry import DriverRegistry
from steadyhost.core.errors import DriverUnavailable, PlanNotFound, PlanParseError, SchemaIncompatible
from steadyhost.core.manifest.models import Manifest
from steadyhost.core.plan.generator import generate_plan, plan_for
from steadyhost.core.plan.io import read_plan, write_plan
from steadyhost.core.plan.versions import compare_versions, parse_constraint, satisfies
from steadyhost.core.state.hashing import manifest_hash_bytes

from .helpers.fakes import FakeDriver
from .helpers.manifests import app, manifest


def _scenario_a() -> Manifest:
    return Manifest.model_validate(manifest([app("A", ">=1.0"), app("B"), app("C", ">=2.0")]))


def _decisions(plan):
    return {a.app_id: a.decision.value for a in plan.actions}


# ---- versions ----
def test_versions_compare_with_zero_padding():
    assert compare_versions("1.2", "1.2.0") == 0
    assert compare_versions("1.10", "1.9") == 1
    assert compare_versions("v2.0.1", "2.0") == 1
    assert compare_versions("1.2.3-beta", "1.2.3") == 0


def test_constraint_forms():
    assert satisfies("1.2.0", "1.2")
    assert satisfies("2.5", ">=2.0")
    assert not satisfies("1.5", ">=2.0")
    assert satisfies("3.1", "==3.1.0")
    assert satisfies("0.1", None)
    assert not satisfies(None, None)
    assert not satisfies("", ">=1.0")


def test_invalid_constraint_rejected():
    with pytest.raises(ValueError):
        parse_constraint(">=banana")


# ---- hashing ----
def test_manifest_hash_ignores_line_endings():
    lf = b'{\n  "version": 1,\n  "apps": []\n}\n'
    crlf = lf.replace(b"\n", b"\r\n")
    assert manifest_hash_bytes(lf) == manifest_hash_bytes(crlf)
    assert manifest_hash_bytes(lf) != manifest_hash_bytes(lf + b" ")


# ---- generation ----
def test_scenario_a_plan_decisions():
    inv = {"fake": {"A": "1.4.0", "C": "1.5"}}
    plan = generate_plan(
        _scenario_a(),
        inv,
        manifest_hash="h",
        primary_driver="fake",
        supports_upgrade={"fake": True},
        platform="windows",
        generated_at="2026-01-01T00:00:00Z",
    )
    assert _decisions(plan) == {"A": "skip", "B": "install", "C": "upgrade"}
    assert [a.app_id for a in plan.actions] == ["A", "B", "C"]
    c = plan.actions[2]
    assert c.current_state.value == "version-mismatch"
    assert c.installed_version == "1.5"


def test_mismatch_without_upgrade_support_is_skip():
    plan = generate_plan(
        _scenario_a(),
        {"fake": {"A": "1.4.0", "C": "1.5"}},
        manifest_hash="h",
        primary_driver="fake",
        supports_upgrade={"fake": False},
        platform="linux",
    )
    assert _decisions(plan)["C"] == "skip"
    assert "does not support upgrade" in plan.actions[2].reason


def test_plan_is_deterministic():
    kwargs = dict(
        manifest_hash="h",
        primary_driver="fake",
        supports_upgrade={"fake": True},
        platform="linux",
        generated_at="2026-01-01T00:00:00Z",
    )
    inv = {"fake": {"A": "1.4.0", "C": "1.5"}}
    p1 = generate_plan(_scenario_a(), inv, **kwargs)
    p2 = generate_plan(_scenario_a(), dict(inv), **kwargs)
    assert p1 == p2
    assert json.dumps(p1.to_wire(), sort_keys=True) == json.dumps(p2.to_wire(), sort_keys=True)


def test_platform_refs_and_case_insensitive_lookup():
    m = Manifest.model_validate(manifest([app("Git", refs={"windows": "Git.Git", "linux": "git"})]))
    plan = generate_plan(m, {"fake": {"GIT": "2.40"}}, manifest_hash="h", primary_driver="fake", supports_upgrade={}, platform="linux")
    assert plan.actions[0].ref == "git"
    assert plan.actions[0].decision.value == "skip"


def test_plan_for_uses_registry_inventory():
    drv = FakeDriver("fake", {"A": "1.4.0", "C": "1.5"})
    plan, inv = plan_for(_scenario_a(), DriverRegistry([drv], primary="fake"), manifest_hash="h", platform="windows")
    assert _decisions(plan) == {"A": "skip", "B": "install", "C": "upgrade"}
    assert inv == {"fake": {"A": "1.4.0", "C": "1.5"}}
    assert drv.mutations() == []


def test_plan_for_missing_driver_is_fatal():
    m = Manifest.model_validate(manifest([app("A", driver="brew")]))
    with pytest.raises(DriverUnavailable):
        plan_for(m, DriverRegistry([FakeDriver("fake")], primary="fake"), manifest_hash="h")


def test_plan_for_unavailable_driver_is_fatal():
    with pytest.raises(DriverUnavailable):
        plan_for(_scenario_a(), DriverRegistry([FakeDriver("fake", available=False)]), manifest_hash="h")


# ---- plan files ----
def test_plan_file_roundtrip(tmp_path):
    plan = generate_plan(_scenario_a(), {}, manifest_hash="h", primary_driver="fake", supports_upgrade={}, platform="linux")
    path = write_plan(plan, str(tmp_path / "plans" / "p.json"))
    assert read_plan(path) == plan
    raw = json.loads((tmp_path / "plans" / "p.json").read_text(encoding="utf-8"))
    assert raw["schemaVersion"] == 1
    assert raw["actions"][0]["appId"] == "A"


def test_plan_file_errors(tmp_path):
    with pytest.raises(PlanNotFound):
        read_plan(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(PlanParseError):
        read_plan(str(bad))
    newer = tmp_path / "newer.json"
    newer.write_text(json.dumps({"schemaVersion": 9, "actions": []}), encoding="utf-8")
    with pytest.raises(SchemaIncompatible):
        read_plan(str(newer))
