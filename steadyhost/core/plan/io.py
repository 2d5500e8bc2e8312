from __future__ import annotations

import json
import os

from pydantic import ValidationError

from steadyhost.core.config.io import atomic_write_json
from steadyhost.core.errors import PlanNotFound, PlanParseError, SchemaIncompatible
from steadyhost.core.plan.models import PLAN_SCHEMA_VERSION, Plan


def write_plan(plan: Plan, path: str) -> str:
    atomic_write_json(path, plan.to_wire())
    return path


def read_plan(path: str) -> Plan:
    if not os.path.isfile(path):
        raise PlanNotFound(detail=path, path=path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PlanParseError(detail=str(e), path=path) from e
    if not isinstance(data, dict):
        raise PlanParseError(detail="plan must be a JSON object", path=path)
    try:
        version = int(data.get("schemaVersion", PLAN_SCHEMA_VERSION))
    except (TypeError, ValueError):
        raise PlanParseError(detail="schemaVersion must be an integer", path=path) from None
    if version > PLAN_SCHEMA_VERSION:
        raise SchemaIncompatible(detail=f"plan schemaVersion {version} > {PLAN_SCHEMA_VERSION}", path=path)
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(detail=str(e), path=path) from e
