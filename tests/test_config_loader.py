from __future__ import annotations

import pytest

from steadyhost.core.config.loader import ENV_HOME, ENV_MAX_PARALLEL, load_engine_config
from steadyhost.core.config.models import DEFAULT_UNSAFE_PARALLEL_PATTERNS
from steadyhost.core.errors import ConfigError

from .helpers.manifests import write_text


def test_defaults_without_file(tmp_path):
    cfg = load_engine_config(env={}, state_root=str(tmp_path))
    assert cfg.max_parallel == 4
    assert cfg.unsafe_parallel_patterns == DEFAULT_UNSAFE_PARALLEL_PATTERNS
    assert cfg.state_root == str(tmp_path)


def test_jsonc_file_under_state_root_is_picked_up(tmp_path):
    write_text(str(tmp_path / "steadyhost.json"), '{\n  // tuned for CI\n  "max_parallel": 2,\n  "primary_driver": "apt",\n}\n')
    cfg = load_engine_config(env={ENV_HOME: str(tmp_path)})
    assert cfg.max_parallel == 2
    assert cfg.primary_driver == "apt"


def test_env_then_overrides_win(tmp_path):
    path = write_text(str(tmp_path / "cfg.json"), '{"max_parallel": 2}')
    cfg = load_engine_config(path, env={ENV_MAX_PARALLEL: "6"})
    assert cfg.max_parallel == 6
    cfg = load_engine_config(path, env={ENV_MAX_PARALLEL: "6"}, max_parallel=8)
    assert cfg.max_parallel == 8


def test_unknown_key_is_rejected(tmp_path):
    path = write_text(str(tmp_path / "cfg.json"), '{"max_paralel": 2}')
    with pytest.raises(ConfigError) as ei:
        load_engine_config(path, env={})
    assert ei.value.code == "CONFIG_ERROR"


def test_out_of_range_and_bad_env(tmp_path):
    path = write_text(str(tmp_path / "cfg.json"), '{"max_parallel": 0}')
    with pytest.raises(ConfigError):
        load_engine_config(path, env={})
    with pytest.raises(ConfigError):
        load_engine_config(env={ENV_MAX_PARALLEL: "many"}, state_root=str(tmp_path))


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_engine_config(str(tmp_path / "absent.json"), env={})


def test_single_pattern_string_becomes_list(tmp_path):
    cfg = load_engine_config(env={}, state_root=str(tmp_path), sensitive_paths="~/.ssh")
    assert cfg.sensitive_paths == ["~/.ssh"]
