"""Tests for config/loader.py module.

Covers:
- _load_yaml() function
- _deep_merge() function
- load_config() precedence
- resolve_repo_path() function
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from queryplane.config.loader import (
    GLOBAL_CONFIG_PATH,
    _deep_merge,
    _load_yaml,
    load_config,
    resolve_repo_path,
)
from queryplane.core.errors import ConfigError


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path):
    """Keep the user's global config out of every test."""
    with patch("queryplane.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
        yield


def write_repo_config(root: Path, text: str) -> None:
    config_dir = root / ".queryplane"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "config.yaml").write_text(text)


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_returns_empty_dict_for_missing_file(self, tmp_path: Path) -> None:
        """Returns empty dict when file doesn't exist."""
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        """Loads valid YAML content."""
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("cardinality:\n  low: [status]\n")
        assert _load_yaml(yaml_file) == {"cardinality": {"low": ["status"]}}

    def test_returns_empty_for_yaml_null(self, tmp_path: Path) -> None:
        """Returns empty dict for YAML containing null."""
        yaml_file = tmp_path / "null.yaml"
        yaml_file.write_text("null\n")
        assert _load_yaml(yaml_file) == {}

    def test_raises_config_error_for_invalid_yaml(self, tmp_path: Path) -> None:
        """Raises ConfigError for invalid YAML syntax."""
        yaml_file = tmp_path / "invalid.yaml"
        yaml_file.write_text("logging:\n  level:\n    - invalid: [unclosed")
        with pytest.raises(ConfigError):
            _load_yaml(yaml_file)

    def test_raises_config_error_for_non_mapping(self, tmp_path: Path) -> None:
        """A top-level list is not a config."""
        yaml_file = tmp_path / "list.yaml"
        yaml_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            _load_yaml(yaml_file)


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_nested_merge(self) -> None:
        """Nested dicts are merged recursively."""
        base = {"refactor": {"text_block_width": 100, "text_block_indent": "  "}}
        override = {"refactor": {"text_block_width": 120}}
        assert _deep_merge(base, override) == {
            "refactor": {"text_block_width": 120, "text_block_indent": "  "}
        }

    def test_override_replaces_non_dict(self) -> None:
        """Non-dict override replaces dict base."""
        base: dict[str, Any] = {"a": {"nested": 1}}
        override: dict[str, Any] = {"a": "simple"}
        assert _deep_merge(base, override) == {"a": "simple"}

    def test_does_not_mutate_base(self) -> None:
        base = {"a": 1}
        _deep_merge(base, {"b": 2})
        assert base == {"a": 1}


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Returns default config when no config files exist."""
        config = load_config(tmp_path)
        assert config.logging.level == "INFO"
        assert config.checkpoint.path == ".query-optimizer-checkpoint.json"
        assert config.refactor.text_block_width == 80
        assert config.indexes.path is None

    def test_loads_repo_config(self, tmp_path: Path) -> None:
        """Loads config from the repo .queryplane directory."""
        write_repo_config(tmp_path, "indexes:\n  path: schema/indexes.yaml\n")
        assert load_config(tmp_path).indexes.path == "schema/indexes.yaml"

    def test_repo_config_overrides_global(self, tmp_path: Path) -> None:
        """Repo YAML wins over global YAML, key by key."""
        global_file = tmp_path / "global.yaml"
        global_file.write_text("refactor:\n  text_block_width: 100\n  text_block_indent: '    '\n")
        write_repo_config(tmp_path, "refactor:\n  text_block_width: 120\n")

        with patch("queryplane.config.loader.GLOBAL_CONFIG_PATH", global_file):
            config = load_config(tmp_path)
        assert config.refactor.text_block_width == 120
        assert config.refactor.text_block_indent == "    "

    def test_env_vars_override_yaml(self, tmp_path: Path) -> None:
        """Environment variables override YAML config."""
        write_repo_config(tmp_path, "logging:\n  level: INFO\n")
        with patch.dict(os.environ, {"QUERYPLANE__LOGGING__LEVEL": "WARNING"}):
            assert load_config(tmp_path).logging.level == "WARNING"

    def test_env_list_values(self, tmp_path: Path) -> None:
        """List settings accept JSON from the environment."""
        with patch.dict(os.environ, {"QUERYPLANE__CARDINALITY__LOW": '["Region", "tier"]'}):
            assert load_config(tmp_path).cardinality.low == ["region", "tier"]

    def test_kwargs_override_all(self, tmp_path: Path) -> None:
        """Keyword arguments override everything and merge with other sources."""
        write_repo_config(tmp_path, "cardinality:\n  high: [code]\n")
        config = load_config(tmp_path, cardinality={"low": ["status"]})
        assert config.cardinality.low == ["status"]
        assert config.cardinality.high == ["code"]

    def test_raises_config_error_for_invalid_value(self, tmp_path: Path) -> None:
        """Invalid values surface as ConfigError naming the field."""
        write_repo_config(tmp_path, "refactor:\n  text_block_width: 5\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert "refactor.text_block_width" in exc_info.value.message


class TestResolveRepoPath:
    def test_relative_resolves_against_root(self, tmp_path: Path) -> None:
        assert resolve_repo_path(tmp_path, "db/indexes.yaml") == tmp_path / "db" / "indexes.yaml"

    def test_absolute_is_kept(self, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere.yaml"
        assert resolve_repo_path(Path("/unused"), str(target)) == target


class TestGlobalConfigPath:
    def test_is_in_user_config(self) -> None:
        assert isinstance(GLOBAL_CONFIG_PATH, Path)
        assert "queryplane" in str(GLOBAL_CONFIG_PATH)
