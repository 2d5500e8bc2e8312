from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from steadyhost.core.config.models import EngineConfig
from steadyhost.core.config.paths import StatePaths
from steadyhost.core.errors import ConfigError
from steadyhost.core.manifest import jsonc

ENV_HOME = "STEADYHOST_HOME"
ENV_MAX_PARALLEL = "STEADYHOST_MAX_PARALLEL"
ENV_MANIFESTS = "STEADYHOST_MANIFESTS"


def _read_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = jsonc.loads(f.read())
    except (OSError, ValueError) as e:
        raise ConfigError("Engine config could not be read.", detail=str(e), path=path) from e
    if not isinstance(data, dict):
        raise ConfigError("Engine config must be a JSON object.", path=path)
    return data


def load_engine_config(path: Optional[str] = None, *, env: Optional[Mapping[str, str]] = None, **overrides: Any) -> EngineConfig:
    """
    Resolution order (later wins):
    defaults -> config file -> environment -> explicit overrides.
    Without an explicit path, `<state_root>/steadyhost.json` is used when present.
    """
    env = os.environ if env is None else env
    raw: Dict[str, Any] = {}

    state_root = overrides.get("state_root") or env.get(ENV_HOME) or "."
    cfg_path = path or StatePaths(state_root).config_file
    if path or os.path.exists(cfg_path):
        if not os.path.exists(cfg_path):
            raise ConfigError("Engine config file not found.", path=cfg_path)
        raw.update(_read_config_file(cfg_path))

    if env.get(ENV_HOME):
        raw["state_root"] = env[ENV_HOME]
    if env.get(ENV_MANIFESTS):
        raw["manifests_root"] = env[ENV_MANIFESTS]
    if env.get(ENV_MAX_PARALLEL):
        try:
            raw["max_parallel"] = int(env[ENV_MAX_PARALLEL])
        except ValueError as e:
            raise ConfigError(f"{ENV_MAX_PARALLEL} must be an integer.", detail=str(e)) from e

    raw.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return EngineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError("Engine config is invalid.", detail=str(e)) from e
